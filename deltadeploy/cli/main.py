# -*- coding: utf-8 -*-
"""
CLI Main - deltadeploy
======================

Command-line interface for incremental metadata deploys.

Usage:
    deltadeploy deploy --base origin/main --head HEAD
    deltadeploy deploy --check-only --test-level RunSpecifiedTests
    deltadeploy quick-deploy 0Af5g00000ABCDE
    deltadeploy plan --base HEAD~3
"""

import argparse
import asyncio
import sys
from typing import Callable, List, Optional

from dotenv import load_dotenv

from .. import __version__
from ..config import DeltaDeployConfig, DeployOptions, SalesforceEnvironment, TestLevel
from ..deployers.delta_deployer import DeltaDeployer
from ..logging_config import setup_logging
from .output import Output


class CLI:
    """Main CLI class."""

    def __init__(
        self,
        output: Optional[Output] = None,
        deployer_factory: Callable[[DeltaDeployConfig], DeltaDeployer] = DeltaDeployer
    ):
        self.output = output or Output()
        self.deployer_factory = deployer_factory
        self.parser = self._create_parser()

    def _create_parser(self) -> argparse.ArgumentParser:
        """Create argument parser."""
        parent_parser = argparse.ArgumentParser(add_help=False)
        parent_parser.add_argument(
            "--json",
            action="store_true",
            help="Output in JSON format"
        )
        parent_parser.add_argument(
            "--no-color",
            action="store_true",
            help="Disable colored output"
        )
        parent_parser.add_argument(
            "--log-level",
            default=None,
            help="Log level (DEBUG, INFO, WARNING, ERROR)"
        )

        # Argumentos de origem usados por deploy e plan
        source_parser = argparse.ArgumentParser(add_help=False)
        source_parser.add_argument("--base", default="HEAD~1", help="Previous revision")
        source_parser.add_argument("--head", default="HEAD", help="Current revision")
        source_parser.add_argument("--repo", help="Git repository root")
        source_parser.add_argument("--source", help="Source tree root inside the repository")
        source_parser.add_argument("--output", help="Output directory (recreated on every run)")
        source_parser.add_argument(
            "--exclude",
            nargs="*",
            default=[],
            metavar="TYPE",
            help="Metadata types to skip"
        )

        parser = argparse.ArgumentParser(
            prog="deltadeploy",
            description="Deploy incremental de metadata Salesforce",
            formatter_class=argparse.RawDescriptionHelpFormatter,
            parents=[parent_parser],
            epilog="""
Exemplos:
  deltadeploy plan --base origin/main        Gerar pacotes sem deploy
  deltadeploy deploy --check-only            Validar as alteracoes
  deltadeploy quick-deploy <validationId>    Promover uma validacao
"""
        )

        parser.add_argument(
            "--version", "-v",
            action="version",
            version=f"deltadeploy v{__version__}"
        )

        subparsers = parser.add_subparsers(dest="command", help="Commands")

        deploy_parser = subparsers.add_parser(
            "deploy",
            help="Deploy changed metadata",
            parents=[parent_parser, source_parser]
        )
        deploy_parser.add_argument("--check-only", action="store_true", help="Validate only")
        deploy_parser.add_argument(
            "--test-level",
            default=TestLevel.NO_TEST_RUN.value,
            choices=[level.value for level in TestLevel],
            help="Apex test level"
        )
        deploy_parser.add_argument("--tests", nargs="*", default=[], help="Tests for RunSpecifiedTests")
        deploy_parser.add_argument(
            "--env",
            choices=["sandbox", "production"],
            help="Target environment (overrides SALESFORCE_DOMAIN)"
        )

        quick_parser = subparsers.add_parser(
            "quick-deploy",
            help="Deploy a previously validated job",
            parents=[parent_parser]
        )
        quick_parser.add_argument("validated_id", help="ID of the validated (check-only) deploy")
        quick_parser.add_argument("--env", choices=["sandbox", "production"], help="Target environment")

        subparsers.add_parser(
            "plan",
            help="Classify and stage changes without deploying",
            parents=[parent_parser, source_parser]
        )

        return parser

    def run(self, args: Optional[List[str]] = None) -> int:
        """
        Run CLI with given arguments.

        Returns:
            Exit code (0 for success)
        """
        parsed = self.parser.parse_args(args)

        if parsed.no_color:
            self.output.disable_color()

        if not parsed.command:
            self.parser.print_help()
            return 0

        # Logs vao para stderr quando a saida e JSON
        setup_logging(
            level=parsed.log_level,
            stream=sys.stderr if parsed.json else None
        )

        handler = getattr(self, f"cmd_{parsed.command.replace('-', '_')}", None)
        if handler is None:
            self._fail(parsed, f"Unknown command: {parsed.command}")
            return 1

        try:
            result = handler(parsed)
        except Exception as e:
            self._fail(parsed, f"{type(e).__name__}: {e}")
            return 1

        if parsed.json and result is not None:
            self.output.json_document(result)

        return result.get("exit_code", 0) if result else 0

    def _fail(self, args, message: str):
        # Com --json o stdout continua sendo um unico documento JSON
        if args.json:
            self.output.json_document({"error": message, "exit_code": 1})
        else:
            self.output.status("error", message)

    def load_config(self, args) -> DeltaDeployConfig:
        """Read the environment (and .env) and apply command-line overrides."""
        load_dotenv()
        config = DeltaDeployConfig.from_env()

        if getattr(args, "repo", None):
            config.repo_path = args.repo
        if getattr(args, "source", None):
            config.source_dir = args.source
        if getattr(args, "output", None):
            config.output_dir = args.output
        if getattr(args, "exclude", None):
            config.exclude_types = list(dict.fromkeys(config.exclude_types + args.exclude))
        if getattr(args, "env", None):
            config.domain = (
                SalesforceEnvironment.PRODUCTION.value
                if args.env == "production"
                else SalesforceEnvironment.SANDBOX.value
            )

        return config

    def cmd_deploy(self, args) -> dict:
        """Deploy changed metadata."""
        config = self.load_config(args)
        options = DeployOptions(
            check_only=args.check_only,
            test_level=args.test_level,
            specified_tests=args.tests
        )

        deployer = self.deployer_factory(config)
        report = asyncio.run(deployer.deploy(args.base, args.head, options))

        if not args.json:
            self.output.title("Deploy")
            if report.nothing_to_deploy:
                self.output.status("info", "Nada para deploy")
            else:
                self.output.conversion(report.conversion)
                self.output.deploy_job("Primario", report.primary)
                if report.secondary:
                    self.output.deploy_job("Destrutivo", report.secondary)
                if report.secondary_error:
                    self.output.status("warn", report.secondary_error)
            self.output.outcome("Deploy", report.primary, report.exit_code)

        return report.to_dict()

    def cmd_quick_deploy(self, args) -> dict:
        """Quick deploy of a validated job."""
        config = self.load_config(args)
        deployer = self.deployer_factory(config)
        report = asyncio.run(deployer.quick_deploy(args.validated_id))

        if not args.json:
            self.output.title("Quick Deploy")
            self.output.deploy_job("Quick deploy", report.primary)
            self.output.outcome("Quick deploy", report.primary, report.exit_code)

        return report.to_dict()

    def cmd_plan(self, args) -> dict:
        """Classify and stage without deploying."""
        config = self.load_config(args)
        deployer = self.deployer_factory(config)
        conversion = asyncio.run(deployer.plan(args.base, args.head))

        if not args.json:
            self.output.title("Plano")
            self.output.conversion(conversion)
            self.output.status("info", f"Saida: {conversion.output_dir}")

        return conversion.to_dict()


def run_cli(args: Optional[List[str]] = None) -> int:
    """Run the CLI."""
    return CLI().run(args)


def main():
    """Entry point."""
    sys.exit(run_cli())


if __name__ == "__main__":
    main()
