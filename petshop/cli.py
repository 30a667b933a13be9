"""
PetShop Sync - Command Line Interface

Maintenance commands for operators:
- companies: List companies and their trial state
- reap-expired: Delete companies whose trial has expired
- extend-trial: Extend a company's trial
- sync: Log in as a company and push pending local changes
- set-token / set-api-url: Edit the storage settings in config.yaml
"""

import argparse
import asyncio
import sys

from petshop import __version__
from petshop.config import get_settings
from petshop.dependencies import PetShopServices, bootstrap_services, create_services
from petshop.errors import PetShopError
from petshop.services.config_service import ConfigService
from petshop.utils.custom_logger import configure_logging


def print_advisories(services: PetShopServices) -> None:
    """Print and clear the errors recorded by the services"""
    for message in services.registry.last_errors + services.store.last_errors:
        print(f"  ! {message}")
    services.registry.clear_errors()
    services.store.last_errors.clear()


async def list_companies(services: PetShopServices) -> int:
    """Print every company with its trial state"""
    registry = services.registry
    await registry.load_companies()
    print_advisories(services)

    if not registry.companies:
        print("No companies registered.")
        return 0

    now = registry.clock()
    print(f"{'ID':<38} {'Username':<20} {'Name':<24} Trial")
    for company in registry.companies:
        if company.is_trial_expired(now):
            trial = "expired"
        else:
            trial = f"{company.remaining_trial_days(now)} day(s) left"
        print(f"{company.id:<38} {company.username:<20} {company.name:<24} {trial}")
    return 0


async def reap_expired(services: PetShopServices) -> int:
    """Delete expired companies"""
    deleted = await services.registry.check_and_delete_expired_trials()
    for company in deleted:
        print(f"Deleted {company.username} ({company.id})")
    print(f"{len(deleted)} expired company(ies) deleted.")
    failed = bool(services.registry.last_errors)
    print_advisories(services)
    return 1 if failed else 0


async def extend_trial(services: PetShopServices, company_id: str, days: int) -> int:
    """Extend one company's trial"""
    await services.registry.load_companies()
    company = await services.registry.extend_trial(company_id, days)
    print(f"Trial for {company.username} now ends {company.trial_expires_at:%Y-%m-%d %H:%M} UTC.")
    return 0


async def sync_company(services: PetShopServices, username: str, password: str) -> int:
    """Log in, load, and push pending local changes"""
    await bootstrap_services(services)
    await services.registry.login(username, password)
    await services.store.load()
    ok = await services.store.sync_to_github()

    print_advisories(services)
    if not ok:
        print("Sync failed; local changes are kept.")
        return 1
    print(f"Synced {len(services.store.products)} products and {len(services.store.sales)} sales.")
    return 0


async def run_command(args: argparse.Namespace) -> int:
    services = create_services()
    try:
        if args.command == "companies":
            return await list_companies(services)
        if args.command == "reap-expired":
            return await reap_expired(services)
        if args.command == "extend-trial":
            return await extend_trial(services, args.company_id, args.days)
        if args.command == "sync":
            return await sync_company(services, args.username, args.password)
        raise ValueError(f"Unknown command: {args.command}")
    finally:
        await services.close()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="petshop",
        description="PetShop Sync - maintenance commands",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  petshop companies                       List companies and trial state
  petshop extend-trial <company-id> 30    Add 30 days to a trial
  petshop sync acme1 pass123              Push pending changes for acme1
  petshop set-token ghp_xxx               Store the GitHub token
""",
    )

    parser.add_argument(
        "--version",
        "-v",
        action="version",
        version=f"PetShop Sync {__version__}",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Log at DEBUG level",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("companies", help="List companies and their trial state")
    subparsers.add_parser("reap-expired", help="Delete companies whose trial has expired")

    extend = subparsers.add_parser("extend-trial", help="Extend a company's trial")
    extend.add_argument("company_id", help="Company id")
    extend.add_argument("days", type=int, help="Days to add")

    sync = subparsers.add_parser("sync", help="Log in and push pending local changes")
    sync.add_argument("username")
    sync.add_argument("password")

    token = subparsers.add_parser("set-token", help="Store the GitHub personal access token")
    token.add_argument("token")

    api_url = subparsers.add_parser("set-api-url", help="Store the PetShop backend URL")
    api_url.add_argument("url")

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point"""
    args = build_parser().parse_args(argv)
    settings = get_settings()

    config_service = ConfigService(settings.config_path)
    log_config = config_service.get_app_config().application.logging
    if not settings.log_to_file:
        log_config = log_config.model_copy(update={"log_to_file": False})
    configure_logging(log_config, log_dir=settings.log_dir, debug=args.debug or settings.debug)

    try:
        if args.command == "set-token":
            config_service.set_token(args.token)
            print("GitHub token saved.")
            return 0
        if args.command == "set-api-url":
            config_service.set_api_url(args.url)
            print("API URL saved.")
            return 0
        return asyncio.run(run_command(args))
    except (PetShopError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
