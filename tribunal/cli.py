#!/usr/bin/env python3
"""
Tribunal CLI

Command-line interface for operators of the dispute platform.

Usage:
    tribunal <command> [subcommand] [options]

Commands:
    config      Configuration management
    currencies  Show the stake currencies a platform would accept
    payout      Compute a finalization payout without running a dispute
    scenario    Validate scenario files
    simulate    Replay scenario files against a fresh platform
"""

from __future__ import annotations

import argparse
import json
import sys
from enum import Enum
from pathlib import Path
from typing import Any, List, Optional

from tribunal import __version__
from tribunal.errors import TribunalError
from tribunal.observability import TribunalLayer, configure_logging, get_logger

logger = get_logger("cli", TribunalLayer.CLI)


class OutputFormat(Enum):
    """Output format options."""
    JSON = "json"
    YAML = "yaml"
    TABLE = "table"
    TEXT = "text"


class CLIError(Exception):
    """CLI error with exit code."""
    def __init__(self, message: str, exit_code: int = 1):
        super().__init__(message)
        self.exit_code = exit_code


def format_output(data: Any, fmt: OutputFormat = OutputFormat.JSON) -> str:
    """Format data for output."""
    if fmt == OutputFormat.JSON:
        return json.dumps(data, indent=2, default=str)
    elif fmt == OutputFormat.YAML:
        import yaml
        return yaml.dump(data, default_flow_style=False, sort_keys=False)
    elif fmt == OutputFormat.TABLE:
        return _format_table(data)
    else:
        return str(data)


def _format_table(data: Any) -> str:
    """Format data as ASCII table."""
    if isinstance(data, list) and data and isinstance(data[0], dict):
        headers = list(data[0].keys())
        rows = [[str(row.get(h, ""))[:40] for h in headers] for row in data]
        widths = [max(len(h), max(len(r[i]) for r in rows)) for i, h in enumerate(headers)]

        lines = []
        lines.append(" | ".join(h.ljust(widths[i]) for i, h in enumerate(headers)))
        lines.append("-+-".join("-" * w for w in widths))
        for row in rows:
            lines.append(" | ".join(c.ljust(widths[i]) for i, c in enumerate(row)))
        return "\n".join(lines)
    elif isinstance(data, dict):
        return "\n".join(f"{k}: {v}" for k, v in data.items())
    return str(data)


class TribunalCLI:
    """Main CLI application."""

    def __init__(self):
        self.parser = argparse.ArgumentParser(
            prog="tribunal",
            description="Escrowed dispute resolution with oracle verdicts",
            formatter_class=argparse.RawDescriptionHelpFormatter,
        )
        self.parser.add_argument(
            "--version", "-V",
            action="version",
            version=f"tribunal {__version__}",
        )
        self.parser.add_argument(
            "--format", "-f",
            choices=["json", "yaml", "table", "text"],
            default="json",
            help="Output format (default: json)",
        )
        self.parser.add_argument(
            "--quiet", "-q",
            action="store_true",
            help="Suppress error messages",
        )
        self.parser.add_argument(
            "--config", "-c",
            help="Platform config file (YAML) to load before running the command",
        )
        self.parser.add_argument(
            "--log-level",
            choices=["debug", "info", "warning", "error", "critical"],
            help="Enable logging to stderr at this level",
        )

        self.subparsers = self.parser.add_subparsers(dest="command", help="Commands")
        self._register_commands()

    def _register_commands(self) -> None:
        """Register all command groups."""
        self._register_config_commands()
        self._register_currency_commands()
        self._register_payout_command()
        self._register_scenario_commands()
        self._register_simulate_command()

    def _register_config_commands(self) -> None:
        """Register config subcommands."""
        config = self.subparsers.add_parser("config", help="Configuration management")
        config_sub = config.add_subparsers(dest="subcommand")

        # config get
        get = config_sub.add_parser("get", help="Get configuration value")
        get.add_argument("path", help="Config path (e.g., protocol.appeal_window_seconds)")

        # config set
        set_cmd = config_sub.add_parser("set", help="Set configuration value")
        set_cmd.add_argument("path", help="Config path")
        set_cmd.add_argument("value", help="Value to set")

        # config show
        config_sub.add_parser("show", help="Show all configuration")

        # config validate
        config_sub.add_parser("validate", help="Validate configuration")

        # config schema
        config_sub.add_parser("schema", help="Export configuration schema")

    def _register_currency_commands(self) -> None:
        self.subparsers.add_parser("currencies", help="Show configured stake currencies")

    def _register_payout_command(self) -> None:
        payout = self.subparsers.add_parser("payout", help="Compute a finalization payout")
        payout.add_argument("--stake", "-s", required=True, help="Per-party stake (decimal amount)")
        payout.add_argument("--resolution", "-r", required=True,
                            help="favor_claimant, favor_respondent, split or dismissed")
        payout.add_argument("--asset", "-a", help="Stake currency (default: native)")
        payout.add_argument("--fee-bps", type=int, help="Override the currency's platform fee")
        payout.add_argument("--appeal-stake", help="Appeal stake lodged (decimal amount)")

    def _register_scenario_commands(self) -> None:
        scenario = self.subparsers.add_parser("scenario", help="Scenario files")
        scenario_sub = scenario.add_subparsers(dest="subcommand")

        # scenario validate
        validate = scenario_sub.add_parser("validate", help="Schema-check scenario files")
        validate.add_argument("paths", nargs="+", help="Scenario YAML files")

    def _register_simulate_command(self) -> None:
        simulate = self.subparsers.add_parser("simulate", help="Run scenario files")
        simulate.add_argument("paths", nargs="+", help="Scenario YAML files or directories")

    def run(self, args: Optional[List[str]] = None) -> int:
        """Run the CLI."""
        parsed = self.parser.parse_args(args)

        if not parsed.command:
            self.parser.print_help()
            return 0

        try:
            if parsed.log_level:
                configure_logging(parsed.log_level, "text")
            from tribunal.config import get_config_manager
            if parsed.config:
                get_config_manager().load_from_file(parsed.config)
            else:
                get_config_manager().load_defaults()

            fmt = OutputFormat(parsed.format)
            result = self._dispatch(parsed)

            if result is not None:
                print(format_output(result, fmt))

            if isinstance(result, dict) and result.get("passed") is False:
                return 1
            return 0

        except CLIError as e:
            if not parsed.quiet:
                print(f"Error: {e}", file=sys.stderr)
            return e.exit_code

        except TribunalError as e:
            if not parsed.quiet:
                print(f"Error [{e.code}]: {e.message}", file=sys.stderr)
            return 3

        except Exception as e:
            logger.error(f"Command {parsed.command} failed", exc_info=True)
            if not parsed.quiet:
                print(f"Error: {e}", file=sys.stderr)
            return 1

    def _dispatch(self, args: argparse.Namespace) -> Any:
        """Dispatch command to handler."""
        cmd = args.command
        subcmd = getattr(args, "subcommand", None)

        handler_name = f"_handle_{cmd}_{subcmd}" if subcmd else f"_handle_{cmd}"
        handler = getattr(self, handler_name, None)

        if handler is None:
            raise CLIError(f"Unknown command: {cmd} {subcmd or ''}", exit_code=2)

        return handler(args)

    # Config handlers
    def _handle_config_get(self, args: argparse.Namespace) -> Any:
        from tribunal.config import get_config_manager
        mgr = get_config_manager()
        return {"path": args.path, "value": mgr.get(args.path)}

    def _handle_config_set(self, args: argparse.Namespace) -> Any:
        from tribunal.config import get_config_manager
        mgr = get_config_manager()
        mgr.set(args.path, args.value)
        return {"path": args.path, "value": mgr.get(args.path), "status": "updated"}

    def _handle_config_show(self, args: argparse.Namespace) -> Any:
        from tribunal.config import get_config_manager
        mgr = get_config_manager()
        data = mgr.config.to_dict()
        if mgr.currencies:
            data["currencies"] = mgr.currencies
        return data

    def _handle_config_validate(self, args: argparse.Namespace) -> Any:
        from tribunal.config import get_config_manager
        mgr = get_config_manager()
        errors = mgr.validate()
        return {"valid": len(errors) == 0, "errors": errors}

    def _handle_config_schema(self, args: argparse.Namespace) -> Any:
        from tribunal.config import get_config_manager
        mgr = get_config_manager()
        return mgr.export_schema()

    # Currency handlers
    def _handle_currencies(self, args: argparse.Namespace) -> Any:
        return [c.to_dict() for c in self._registry().all()]

    def _registry(self):
        from tribunal.config import get_config_manager
        from tribunal.engine import DisputeResolution

        platform = DisputeResolution.from_config("cli-admin", "cli-treasury", get_config_manager())
        return platform.currencies

    # Payout handlers
    def _handle_payout(self, args: argparse.Namespace) -> Any:
        from tribunal.settlement import compute_payout_plan
        from tribunal.types import AppealStake, Dispute, DisputeCategory, Resolution

        registry = self._registry()
        currency = registry.require(args.asset) if args.asset else registry.native
        try:
            stake = currency.to_units(args.stake)
            appeal_amount = currency.to_units(args.appeal_stake) if args.appeal_stake else 0
        except (ArithmeticError, ValueError) as e:
            raise CLIError(f"Invalid amount: {e}", exit_code=2) from e
        resolution = Resolution.decided(args.resolution)

        dispute = Dispute(
            dispute_id=0,
            claimant="claimant",
            respondent="respondent",
            category=DisputeCategory.OTHER,
            description_ref="",
            stake_asset=currency.asset,
            stake_amount=stake,
            fee_bps=currency.fee_bps if args.fee_bps is None else args.fee_bps,
            created_at=0,
            evidence_deadline=0,
            resolution=resolution,
        )
        if appeal_amount:
            dispute.appealed = True
            dispute.appeal = AppealStake(0, "appellant", appeal_amount, 0)

        plan = compute_payout_plan(dispute, "treasury")
        data = plan.to_dict()
        data["formatted"] = {
            t["reason"]: f"{currency.format(t['amount'])} {currency.asset}" for t in data["transfers"]
        }
        return data

    # Scenario handlers
    def _handle_scenario_validate(self, args: argparse.Namespace) -> Any:
        from tribunal.core import load_yaml
        from tribunal.simulation import validate_scenario

        results = []
        for path in args.paths:
            errors = validate_scenario(load_yaml(Path(path)))
            results.append({"path": path, "valid": not errors, "errors": errors})
        return {"passed": all(r["valid"] for r in results), "results": results}

    def _handle_simulate(self, args: argparse.Namespace) -> Any:
        from tribunal.simulation import run_scenario

        files: List[Path] = []
        for raw in args.paths:
            path = Path(raw)
            if path.is_dir():
                files.extend(sorted(path.glob("*.yaml")))
            elif path.exists():
                files.append(path)
            else:
                raise CLIError(f"Scenario not found: {path}", exit_code=2)

        results = [run_scenario(p).to_dict() for p in files]
        return {
            "passed": all(r["passed"] for r in results),
            "scenarios": [
                {"name": r["name"], "passed": r["passed"], "failures": r["failures"], "events": r["events"]}
                for r in results
            ],
        }


def main() -> int:
    """CLI entry point."""
    cli = TribunalCLI()
    return cli.run()


if __name__ == "__main__":
    sys.exit(main())
