from pathlib import Path
from typing import Dict, Optional

from eth_typing import ChecksumAddress
from eth_utils import to_checksum_address

from zkevm_deployment.utils import DeploymentConfigError, _load_json, _write_json


class OngoingDeployment:
    """
    Durable record of the contracts already deployed by an unfinished deployment run,
    keyed by logical name. Every change rewrites the whole file.
    """

    def __init__(self, filepath: Path):
        self.filepath = Path(filepath)
        self._entries: Dict[str, ChecksumAddress] = dict()

    def load(self) -> Dict[str, ChecksumAddress]:
        """Loads the persisted entries; an absent file means a fresh deployment."""
        if not self.filepath.exists():
            self._entries = dict()
            return dict()

        data = _load_json(self.filepath)
        if not isinstance(data, dict):
            raise DeploymentConfigError(f"Malformed ongoing deployment file {self.filepath}")
        self._entries = {name: to_checksum_address(address) for name, address in data.items()}
        return dict(self._entries)

    def __contains__(self, name: str) -> bool:
        return name in self._entries

    def get(self, name: str) -> Optional[ChecksumAddress]:
        return self._entries.get(name)

    @property
    def entries(self) -> Dict[str, ChecksumAddress]:
        return dict(self._entries)

    def record_step(self, name: str, address: str) -> None:
        self._entries[name] = to_checksum_address(address)
        self._persist()

    def clear_entries(self, *names: str) -> None:
        for name in names:
            self._entries.pop(name, None)
        self._persist()

    def finalize(self) -> None:
        """Deletes the record; only once the whole deployment has succeeded."""
        self._entries = dict()
        if self.filepath.exists():
            self.filepath.unlink()

    def _persist(self) -> None:
        _write_json(self._entries, self.filepath)
