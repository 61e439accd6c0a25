"""flipstack CLI entry point."""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from dotenv import load_dotenv
from pydantic import ValidationError

load_dotenv(Path.cwd() / ".env")

from flipstack import __version__
from flipstack.config import Settings, get_settings
from flipstack.runner import play_round
from flipstack.services.gateway import CrossbarClient, OracleSigner, PaperGateway
from flipstack.storage import EventLogSink, load_ledger, load_snapshot, save_ledger
from flipstack.wager import (
    CoinFlipParams,
    CommitRevealWager,
    SettlementReport,
    StackingParams,
    WagerError,
)

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)

logger = logging.getLogger(__name__)

CONFIG_TEMPLATE = """# flipstack Configuration
# Operational parameters for the wager engine and randomness gateway.
# Secrets (LOGFIRE_TOKEN, ORACLE_PRIVATE_KEY) belong in .env, not here.

wager:
  policy:
    kind: coin_flip          # coin_flip | stacking
    payout_numerator: 2
    payout_denominator: 1
  on_verification_failure: forfeit   # forfeit | retry
  min_stake: 1

gateway:
  paper_mode: true
  crossbar_url: https://crossbar.switchboard.xyz
  chain_id: 10143
  min_settlement_delay_seconds: 1
  max_retries: 3

runner:
  resolve_attempts: 5
  resolve_poll_seconds: 1.0
  default_stake: 100
"""


def _init_logfire(settings: Settings) -> None:
    """Initialize Logfire if available, without failing commands."""
    try:
        from flipstack.observability import initialize_logfire

        initialize_logfire(settings)
    except Exception as e:
        logger.warning(f"Failed to initialize Logfire: {e}")


def cmd_init(args: argparse.Namespace) -> int:
    """Initialize data directory structure and configuration file."""
    data_dir = Path("data").resolve()

    try:
        (data_dir / "events").mkdir(parents=True, exist_ok=True)
        logger.info(f"Created data directory: {data_dir}")

        config_path = data_dir / "config.yaml"
        if not config_path.exists():
            config_path.write_text(CONFIG_TEMPLATE)
            logger.info(f"Created config template: {config_path}")
        else:
            logger.info(f"Config file already exists: {config_path}")

        print(f"\n✓ Data directory initialized at {data_dir}")
        print("\nNext steps:")
        print("1. Review data/config.yaml")
        print("2. Run 'python -m flipstack config' to verify configuration")
        print("3. Run 'python -m flipstack play --account alice --amount 100'\n")
        return 0

    except OSError as e:
        logger.error(f"Failed to initialize: {e}")
        print(f"\n❌ Initialization failed: {e}\n")
        return 1


def cmd_config(args: argparse.Namespace) -> int:
    """Display merged configuration."""
    try:
        settings = get_settings()

        print("\n=== flipstack Configuration ===\n")
        print(f"Data Directory: {settings.data_dir}\n")

        policy = settings.wager.policy
        print("Wager:")
        print(f"  Policy: {policy.kind}")
        if isinstance(policy, CoinFlipParams):
            print(f"  Payout Multiplier: {policy.multiplier}x")
        print(f"  On Verification Failure: {settings.wager.on_verification_failure}")
        print(f"  Min Stake: {settings.wager.min_stake}")
        print(f"  Max Stake: {settings.wager.max_stake or 'unlimited'}\n")

        print("Gateway:")
        print(f"  Paper Mode: {settings.gateway.paper_mode}")
        print(f"  Crossbar: {settings.gateway.resolve_url}")
        print(f"  Chain ID: {settings.gateway.chain_id}")
        print(f"  Min Settlement Delay: {settings.gateway.min_settlement_delay_seconds}s\n")

        print("Runner:")
        print(f"  Resolve Attempts: {settings.runner.resolve_attempts}")
        print(f"  Resolve Poll: {settings.runner.resolve_poll_seconds}s\n")

        print("Secrets:")
        print(f"  Oracle Key: {'✓ Set' if settings.oracle_private_key else '✗ Not set (ephemeral)'}")
        print(f"  Logfire: {'✓ Set' if settings.logfire_token else '✗ Not set'}\n")
        return 0

    except ValidationError as e:
        print("\n❌ Configuration Error:\n")
        for error in e.errors():
            print(f"  • {'.'.join(str(x) for x in error['loc'])}: {error['msg']}")
        print()
        return 1
    except Exception as e:
        logger.error(f"Failed to load config: {e}")
        print(f"\n❌ Failed to load configuration: {e}\n")
        return 1


def cmd_status(args: argparse.Namespace) -> int:
    """Display ledger status."""
    try:
        snapshot = load_snapshot()
    except Exception as e:
        logger.error(f"Failed to read ledger: {e}")
        print(f"\n❌ Failed to read ledger: {e}\n")
        return 1

    print("\n=== flipstack Ledger ===\n")
    print(f"Last Updated: {snapshot.last_updated or 'never'}")
    print(f"Accounts: {len(snapshot.entries)}\n")

    for account, entry in sorted(snapshot.entries.items()):
        pending = entry.pending_commitment_id or "-"
        print(f"  {account}")
        print(f"    Stake: {entry.stake}  Stack: {entry.stack_height}  State: {entry.state.kind}")
        print(f"    Pending: {pending}")
        print(
            f"    W/L/F/D: {entry.wins}/{entry.losses}/{entry.forfeits}/{entry.deferrals}"
        )
    print()
    return 0


def _print_report(index: int, report: SettlementReport) -> None:
    label = {
        "won": "🎉 WON",
        "lost": "😔 LOST",
        "forfeited": "⚠️  FORFEITED",
        "deferred": "⏳ NOT YET RESOLVED",
        "retry": "↻ PROOF REJECTED (still pending)",
    }[report.status]
    print(f"Round {index}: {label}")
    print(f"  Stake: {report.stake_before} -> {report.stake_after}")
    print(f"  Stack: {report.stack_height}")
    if report.random_value is not None:
        print(f"  Random value: {report.random_value}")


async def _play(args: argparse.Namespace, settings: Settings) -> int:
    wager_config = settings.wager
    if args.policy and args.policy != wager_config.policy.kind:
        policy = StackingParams() if args.policy == "stacking" else CoinFlipParams()
        wager_config = wager_config.model_copy(update={"policy": policy})

    oracles = None
    if settings.oracle_private_key:
        oracles = [OracleSigner.from_seed_hex(settings.oracle_private_key)]

    gateway = PaperGateway(settings.gateway, oracles=oracles)
    ledger = load_ledger()
    engine = CommitRevealWager(gateway, ledger=ledger, config=wager_config)
    engine.events.subscribe(EventLogSink())

    amount = args.amount or settings.runner.default_stake
    exit_code = 0

    try:
        async with CrossbarClient(settings.gateway, paper_gateway=gateway) as crossbar:
            for i in range(1, args.rounds + 1):
                try:
                    report = await play_round(
                        engine, crossbar, args.account, amount, config=settings.runner
                    )
                    _print_report(i, report)
                except WagerError as e:
                    logger.error(f"Round {i} rejected: {e}")
                    print(f"\n❌ Round {i} rejected: {e}\n")
                    exit_code = 1
                    break
    finally:
        save_ledger(ledger)

    entry = ledger.get(args.account)
    print(f"\nFinal stake for {args.account}: {entry.stake} (stack {entry.stack_height})\n")
    return exit_code


async def _forfeit(account: str, settings: Settings) -> SettlementReport:
    ledger = load_ledger()
    engine = CommitRevealWager(
        PaperGateway(settings.gateway),
        ledger=ledger,
        config=settings.wager.model_copy(update={"on_verification_failure": "forfeit"}),
    )
    engine.events.subscribe(EventLogSink())
    try:
        # an empty proof never verifies, so the wager resolves as forfeited
        return await engine.settle_with_report(account, "0x")
    finally:
        save_ledger(ledger)


def cmd_forfeit(args: argparse.Namespace) -> int:
    """Abandon an open wager whose proof can no longer be obtained."""
    try:
        settings = get_settings()
        report = asyncio.run(_forfeit(args.account, settings))
    except WagerError as e:
        print(f"\n❌ {e}\n")
        return 1
    except Exception as e:
        logger.error(f"Forfeit failed: {e}", exc_info=True)
        print(f"\n❌ Forfeit failed: {e}\n")
        return 1

    print(f"\nForfeited {report.stake_before} from {args.account} (commitment {report.commitment_id})\n")
    return 0


def cmd_play(args: argparse.Namespace) -> int:
    """Play wager rounds against the paper gateway."""
    try:
        settings = get_settings()
    except ValidationError as e:
        print(f"\n❌ Configuration Error: {e}\n")
        return 1
    _init_logfire(settings)

    if not settings.gateway.paper_mode:
        print("\n❌ The CLI only drives the paper gateway. Set gateway.paper_mode: true\n")
        return 1

    try:
        print(f"\n=== flipstack: {args.account} ===\n")
        return asyncio.run(_play(args, settings))

    except KeyboardInterrupt:
        print("\n\nReceived interrupt signal. Shutting down...\n")
        return 1
    except Exception as e:
        logger.error(f"Play failed: {e}", exc_info=True)
        print(f"\n❌ Play failed: {e}\n")
        return 1


def main() -> int:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="flipstack: commit-reveal wagers settled with oracle randomness",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"flipstack {__version__}",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    parser_init = subparsers.add_parser(
        "init",
        help="Initialize data directory and configuration file",
    )
    parser_init.set_defaults(func=cmd_init)

    parser_config = subparsers.add_parser(
        "config",
        help="Display merged configuration",
    )
    parser_config.set_defaults(func=cmd_config)

    parser_status = subparsers.add_parser(
        "status",
        help="Display ledger status",
    )
    parser_status.set_defaults(func=cmd_status)

    parser_play = subparsers.add_parser(
        "play",
        help="Stake, resolve and settle wager rounds on the paper gateway",
    )
    parser_play.add_argument("--account", required=True, help="Account to wager from")
    parser_play.add_argument("--amount", type=int, default=None, help="Stake per round")
    parser_play.add_argument(
        "--policy",
        choices=["coin_flip", "stacking"],
        default=None,
        help="Override the configured payout policy",
    )
    parser_play.add_argument("--rounds", type=int, default=1, help="Rounds to play")
    parser_play.set_defaults(func=cmd_play)

    parser_forfeit = subparsers.add_parser(
        "forfeit",
        help="Forfeit an open wager that can no longer be settled",
    )
    parser_forfeit.add_argument("--account", required=True, help="Account to forfeit")
    parser_forfeit.set_defaults(func=cmd_forfeit)

    args = parser.parse_args()

    if not hasattr(args, "func"):
        parser.print_help()
        return 1

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
