import sys

from tribunal.cli import main

sys.exit(main())
