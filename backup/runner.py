"""One backup run: produce the data, archive it, publish it through the webhook."""

import subprocess
from contextlib import ExitStack
from pathlib import Path
from typing import Optional

from backup.archive import build_archive
from backup.reassembly import PublishResult, ReassemblyScriptBuilder
from backup.status import StatusReporter
from cli.config import Config
from common.constants import ARCHIVE_OUTPUT_NAME
from common.exceptions import LocalIOError
from common.logging_config import get_logger
from common.tempfiles import scoped_dir, scoped_file
from common.utils import format_file_size
from webhook.channel import MessageChannel

logger = get_logger(__name__)


class BackupRunner:
    """
    Executes backup runs for one configuration.

    A run never fails on network errors (the channel retries forever); any
    local failure ends the run, is logged, and is shown on the head message.
    """

    def __init__(
        self,
        config: Config,
        channel: MessageChannel,
        builder: Optional[ReassemblyScriptBuilder] = None,
        temp_root: Optional[Path] = None
    ):
        """
        Initialize runner.

        Args:
            config: Loaded configuration
            channel: Channel bound to the configured webhook
            builder: Script chain builder (defaults to one on the channel)
            temp_root: Directory for scratch files (defaults to TMPDIR or /var/tmp)
        """
        self.config = config
        self.channel = channel
        self.temp_root = temp_root
        self.builder = builder or ReassemblyScriptBuilder(channel, temp_root=temp_root)

    def run(self) -> Optional[PublishResult]:
        """
        Perform one backup run.

        Returns:
            PublishResult on success, None if the run failed locally
        """
        logger.info("Trying to initiate a backup...")
        status = StatusReporter(self.channel)
        status.start()

        try:
            result = self._run(status)
        except LocalIOError as e:
            logger.error(str(e))
            status.fail(e.reason)
            return None

        logger.info("Backup completed successfully")
        return result

    def _run(self, status: StatusReporter) -> PublishResult:
        with ExitStack() as scratch:
            archive_path = scratch.enter_context(scoped_file(self.temp_root))

            with ExitStack() as workspace:
                try:
                    workdir = workspace.enter_context(scoped_dir(self.temp_root))
                except OSError as e:
                    raise LocalIOError("Setup failed", f"failed to create dir: {e}") from e

                self._produce(workdir, status)

                logger.info("Compressing the archive...")
                status.update("Compressing the archive...")
                password = self.config.get_password()
                if password:
                    logger.info("Archive entries will be encrypted with AES-256")
                build_archive(workdir, archive_path, self.config.get_compression_level(), password)

            try:
                size = archive_path.stat().st_size
            except OSError as e:
                raise LocalIOError("Failed to fetch file metadata", str(e)) from e
            logger.info(f"Final archive size: {format_file_size(size)}")

            status.update("Publishing artifact...")
            try:
                stream = open(archive_path, 'rb')
            except OSError as e:
                raise LocalIOError("Failed to open temporary file", str(e)) from e

            with stream:
                result = self.builder.publish(
                    stream,
                    on_archive_uploaded=lambda count: status.update("Uploading download script...")
                )

        note = None
        if password:
            note = (
                f"The files inside {ARCHIVE_OUTPUT_NAME} are encrypted with AES-256. Open it with "
                "7-Zip or any zip tool that supports WinZip AES, or write a plain copy with "
                f"`webhook-backup decrypt <passphrase> {ARCHIVE_OUTPUT_NAME} backup.zip`."
            )
        status.complete(result.chunk_count, note)
        return result

    def _produce(self, workdir: Path, status: StatusReporter) -> None:
        """
        Run the configured backup script inside workdir.

        Raises:
            LocalIOError: If the script cannot be written, started, or exits non-zero
        """
        with scoped_file(self.temp_root) as script_path:
            try:
                script_path.write_text(self.config.get_script(), encoding='utf-8')
            except OSError as e:
                raise LocalIOError("Setup failed", f"failed to write script file: {e}") from e

            command = self.config.get_shell() + [str(script_path)]
            logger.debug(f"Spawning backup process: {command}")
            try:
                process = subprocess.Popen(command, cwd=workdir)
            except OSError as e:
                raise LocalIOError("Failed to start backup process", str(e)) from e

            status.update("Backing up data...")
            returncode = process.wait()
            if returncode != 0:
                raise LocalIOError(
                    "Backup process failed",
                    f"exited with non-zero code {returncode}"
                )
