"""CLI entry point."""

import argparse
import sys
from pathlib import Path
from typing import Optional

from backup.archive import decrypt_archive
from backup.runner import BackupRunner
from backup.scheduler import BackupScheduler
from cli.config import Config, write_template
from cli.constants import CONFIG_ERROR_EXIT_CODE, PROGRAM_NAME, RUN_FAILED_EXIT_CODE
from common.constants import DEFAULT_CONFIG_PATH
from common.exceptions import ConfigError, LocalIOError
from common.logging_config import setup_logging
from webhook.channel import MessageChannel


def _add_logging_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument('--debug', action='store_true', help="enable debug logging")
    parser.add_argument('--log-file', help="also write logs to this file")


def build_run_parser() -> argparse.ArgumentParser:
    """Parser for 'webhook-backup [--setup] [--once] [config]'."""
    parser = argparse.ArgumentParser(
        prog=PROGRAM_NAME,
        description="Periodically back up the output of a script through a message webhook.",
        epilog=f"Use '{PROGRAM_NAME} decrypt --help' to decrypt a downloaded archive."
    )
    parser.add_argument('--setup', action='store_true', help="write an example config file and exit")
    parser.add_argument('--once', action='store_true', help="perform a single run and exit")
    _add_logging_arguments(parser)
    parser.add_argument('config', nargs='?', default=DEFAULT_CONFIG_PATH, type=Path)
    return parser


def build_decrypt_parser() -> argparse.ArgumentParser:
    """Parser for 'webhook-backup decrypt <passphrase> <input> <output>'."""
    parser = argparse.ArgumentParser(
        prog=f"{PROGRAM_NAME} decrypt",
        description="Decrypt an archive downloaded from the webhook."
    )
    _add_logging_arguments(parser)
    parser.add_argument('passphrase')
    parser.add_argument('input', type=Path)
    parser.add_argument('output', type=Path)
    return parser


def run_backups(args: argparse.Namespace, logger) -> int:
    """Handle the default command."""
    if args.setup:
        write_template(args.config)
        logger.info(f"Wrote example configuration to {args.config}")
        return 0

    config = Config(args.config)
    channel = MessageChannel(config.get_webhook_url(), timeout=config.get_timeout())
    scheduler = BackupScheduler(BackupRunner(config, channel), config.get_delay())

    try:
        if args.once:
            return 0 if scheduler.run_once() else RUN_FAILED_EXIT_CODE
        scheduler.run_forever()
        return 0
    finally:
        channel.close()


def main(argv: Optional[list[str]] = None) -> int:
    """Entry point for CLI."""
    argv = list(sys.argv[1:] if argv is None else argv)
    decrypting = argv[:1] == ['decrypt']
    if decrypting:
        args = build_decrypt_parser().parse_args(argv[1:])
    else:
        args = build_run_parser().parse_args(argv)

    logger = setup_logging('cli', log_level='DEBUG' if args.debug else None, log_file=args.log_file)
    if args.debug:
        logger.info("Debug logging enabled")

    try:
        if decrypting:
            decrypt_archive(args.input, args.output, args.passphrase)
            logger.info(f"Decrypted archive written to {args.output}")
            return 0
        return run_backups(args, logger)
    except ConfigError as e:
        logger.error(f"{PROGRAM_NAME}: {e}")
        return CONFIG_ERROR_EXIT_CODE
    except LocalIOError as e:
        logger.error(f"{PROGRAM_NAME}: {e}")
        return RUN_FAILED_EXIT_CODE
    except KeyboardInterrupt:
        logger.info("Interrupted, exiting")
        return 130


if __name__ == "__main__":
    sys.exit(main())
