"""Copy files between the local machine and a shell session's directory."""

from __future__ import annotations

import posixpath
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path

import structlog

from kube_console.integrations.kubernetes.kubectl import KubectlClient, KubectlCommandError
from kube_console.services.kubernetes.session_manager import SessionTarget

logger = structlog.get_logger()


@dataclass(frozen=True)
class TransferResult:
    """Outcome of a multi-file download."""

    succeeded: tuple[str, ...]
    failed: tuple[str, ...]

    @property
    def ok(self) -> bool:
        return not self.failed


def remote_path(directory: str, name: str) -> str:
    """Join a container directory and a file name with POSIX rules."""
    return posixpath.join(directory, name)


class FileTransferManager:
    """``kubectl cp`` and ``ls`` against a session's target container.

    The directory is usually the shell's tracked working directory. A
    directory of ``~`` is passed through unexpanded.
    """

    def __init__(self, kubectl: KubectlClient) -> None:
        self._kubectl = kubectl
        self._log = logger.bind(entity="file_transfer")

    @staticmethod
    def _pod_path(target: SessionTarget, path: str) -> str:
        return f"{target.namespace}/{target.pod}:{path}"

    async def upload(self, target: SessionTarget, local_path: str | Path, directory: str) -> str:
        """Upload one local file into ``directory``.

        Returns:
            The remote path written.

        Raises:
            KubectlCommandError: If kubectl cp fails.
        """
        local = Path(local_path)
        destination = remote_path(directory, local.name)
        self._log.info("uploading_file", pod=target.pod, local=str(local), remote=destination)
        await self._kubectl.run(
            self._kubectl.cp_args(str(local), self._pod_path(target, destination), target.container)
        )
        return destination

    def existing_local_items(self, names: Iterable[str], output_dir: str | Path) -> list[str]:
        """Names that would overwrite an existing local file or directory."""
        out = Path(output_dir)
        return [name for name in names if (out / name).exists()]

    async def download(
        self,
        target: SessionTarget,
        names: Iterable[str],
        directory: str,
        output_dir: str | Path,
    ) -> TransferResult:
        """Download each named item; one failure does not stop the rest."""
        out = Path(output_dir)
        succeeded: list[str] = []
        failed: list[str] = []
        for name in names:
            source = self._pod_path(target, remote_path(directory, name))
            try:
                await self._kubectl.run(
                    self._kubectl.cp_args(source, str(out / name), target.container)
                )
            except KubectlCommandError as e:
                self._log.warning("download_failed", pod=target.pod, name=name, error=str(e))
                failed.append(name)
            else:
                succeeded.append(name)
        self._log.info(
            "download_finished", pod=target.pod, succeeded=len(succeeded), failed=len(failed)
        )
        return TransferResult(succeeded=tuple(succeeded), failed=tuple(failed))

    async def list_directory(self, target: SessionTarget, directory: str) -> list[str]:
        """Entries of ``directory`` including hidden ones, one per line from ``ls -1 -A``.

        Raises:
            KubectlCommandError: If the listing fails.
        """
        args = self._kubectl.exec_args(
            target.namespace,
            target.pod,
            target.container,
            ["ls", "-1", "-A", directory],
            interactive=False,
        )
        result = await self._kubectl.run(args)
        return [line.strip() for line in result.stdout.splitlines() if line.strip()]
