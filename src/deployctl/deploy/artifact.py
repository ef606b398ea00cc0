"""Artifact lookup and read-only inspection."""

import zipfile
from pathlib import Path

from deployctl.core.exceptions import ArtifactMissingError, EntryNotFoundError, InvalidArtifactError
from deployctl.deploy.models import Artifact, split_artifact_name


class ArtifactLocator:
    """Find a built artifact and peek into it without extracting."""

    def locate(
        self,
        path: str | Path,
        name: str | None = None,
        version: str | None = None,
    ) -> Artifact:
        """Confirm the artifact exists and is non-empty.

        Args:
            path: Expected build output path
            name: Logical name override (parsed from the file name otherwise)
            version: Version override (parsed from the file name otherwise)

        Returns:
            Artifact

        Raises:
            ArtifactMissingError: If the path is absent, not a file, or empty
        """
        artifact_path = Path(path).expanduser()

        try:
            stat = artifact_path.stat()
        except OSError as e:
            raise ArtifactMissingError(f"Artifact not found: {artifact_path}", path=str(artifact_path)) from e

        if not artifact_path.is_file():
            raise ArtifactMissingError(f"Artifact is not a file: {artifact_path}", path=str(artifact_path))
        if stat.st_size == 0:
            raise ArtifactMissingError(f"Artifact is empty: {artifact_path}", path=str(artifact_path))

        parsed_name, parsed_version = split_artifact_name(artifact_path.name)
        return Artifact(
            path=artifact_path,
            name=name or parsed_name,
            version=version or parsed_version,
            size=stat.st_size,
        )

    def peek_entry(self, artifact: Artifact, entry_name: str) -> bytes:
        """Read one archive entry fully into memory.

        Raises:
            EntryNotFoundError: If the archive has no such entry
            InvalidArtifactError: If the file is not a readable archive
        """
        try:
            with zipfile.ZipFile(artifact.path) as archive:
                return archive.read(entry_name.lstrip("/"))
        except KeyError:
            raise EntryNotFoundError(
                f"Entry '{entry_name}' not found in {artifact.file_name}",
                path=str(artifact.path),
                entry=entry_name,
            )
        except zipfile.BadZipFile as e:
            raise InvalidArtifactError(
                f"Artifact is not a valid archive: {artifact.file_name}",
                path=str(artifact.path),
                details={"error": str(e)},
            )
        except FileNotFoundError as e:
            raise ArtifactMissingError(f"Artifact not found: {artifact.path}", path=str(artifact.path)) from e

    def list_entries(self, artifact: Artifact) -> list[str]:
        """List archive entry names."""
        try:
            with zipfile.ZipFile(artifact.path) as archive:
                return archive.namelist()
        except zipfile.BadZipFile as e:
            raise InvalidArtifactError(
                f"Artifact is not a valid archive: {artifact.file_name}",
                path=str(artifact.path),
                details={"error": str(e)},
            )
