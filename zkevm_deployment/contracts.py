"""
Compiled contract artifacts, and the registry resolving logical contract names to them.

The deployment never inspects contract logic: it only asks an artifact for creation
bytecode, encodes calls against its ABI, and compares runtime bytecode.
"""
import typing
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from eth_abi import decode, encode
from eth_utils import function_abi_to_4byte_selector, to_bytes, to_checksum_address
from eth_utils.abi import collapse_if_tuple
from hexbytes import HexBytes
from web3 import Web3

from zkevm_deployment.utils import DeploymentConfigError, _load_json

ABI = List[Dict[str, Any]]

w3 = Web3()


def _abi_types(abi_inputs: ABI) -> List[str]:
    return [collapse_if_tuple(abi_input) for abi_input in abi_inputs]


def _normalize_arg(abi_input: Dict[str, Any], value: Any) -> Any:
    """Converts a human-friendly value (hex strings, struct mappings) into its encodable form."""
    abi_type = abi_input["type"]
    if abi_type.endswith("]"):
        element = dict(abi_input, type=abi_type[: abi_type.rindex("[")])
        return [_normalize_arg(element, v) for v in value]

    if abi_type == "tuple":
        components = abi_input["components"]
        if isinstance(value, dict):
            value = [value[component["name"]] for component in components]
        return tuple(_normalize_arg(c, v) for c, v in zip(components, value))

    if abi_type.startswith("bytes") and isinstance(value, str):
        return to_bytes(hexstr=value)
    if abi_type == "address" and isinstance(value, str):
        return to_checksum_address(value)
    if abi_type.startswith(("uint", "int")) and isinstance(value, str):
        return int(value, 0)
    return value


def _match_abi_args(abi_inputs: ABI, args: Sequence[Any]) -> Optional[List[Any]]:
    """Returns the normalized args if they are encodable against the inputs, else None."""
    if len(abi_inputs) != len(args):
        return None
    try:
        normalized = [_normalize_arg(i, a) for i, a in zip(abi_inputs, args)]
    except (KeyError, TypeError, ValueError):
        return None
    for abi_type, value in zip(_abi_types(abi_inputs), normalized):
        if not w3.is_encodable(abi_type, value):
            return None
    return normalized


class ContractArtifact:
    """A compiled contract: ABI plus creation and runtime bytecode."""

    def __init__(self, name: str, abi: ABI, bytecode: bytes, deployed_bytecode: bytes):
        self.name = name
        self.abi = abi
        self.bytecode = HexBytes(bytecode)
        self.deployed_bytecode = HexBytes(deployed_bytecode)

    def __repr__(self) -> str:
        return f"<ContractArtifact {self.name}>"

    @classmethod
    def from_dict(cls, data: Dict[str, Any], name: Optional[str] = None) -> "ContractArtifact":
        name = name or data.get("contractName")
        try:
            return cls(
                name=name,
                abi=data["abi"],
                bytecode=HexBytes(data["bytecode"]),
                deployed_bytecode=HexBytes(data.get("deployedBytecode", "0x")),
            )
        except KeyError as e:
            raise DeploymentConfigError(f"Malformed artifact for {name}: missing {e}")

    @classmethod
    def from_file(cls, filepath: Path) -> "ContractArtifact":
        return cls.from_dict(_load_json(filepath), name=Path(filepath).stem)

    @property
    def constructor_inputs(self) -> ABI:
        for entry in self.abi:
            if entry.get("type") == "constructor":
                return entry.get("inputs", [])
        return []

    def _method_abis(self, method_name: str) -> ABI:
        method_abis = [
            entry
            for entry in self.abi
            if entry.get("type") == "function" and entry.get("name") == method_name
        ]
        if not method_abis:
            raise DeploymentConfigError(f"{self.name} has no function named '{method_name}'")
        return method_abis

    def encode_constructor(self, *args) -> HexBytes:
        inputs = self.constructor_inputs
        normalized = _match_abi_args(inputs, args)
        if normalized is None:
            raise DeploymentConfigError(
                f"{self.name} constructor requires {len(inputs)} arg(s) of type(s) "
                f"{', '.join(_abi_types(inputs)) or 'none'}; got {args}"
            )
        return HexBytes(encode(_abi_types(inputs), normalized))

    def creation_code(self, *args) -> HexBytes:
        """Creation bytecode followed by the ABI-encoded constructor arguments."""
        return HexBytes(self.bytecode + self.encode_constructor(*args))

    def encode_call(self, method_name: str, *args) -> HexBytes:
        method_abis = self._method_abis(method_name)
        for method_abi in method_abis:
            normalized = _match_abi_args(method_abi["inputs"], args)
            if normalized is None:
                continue
            selector = function_abi_to_4byte_selector(method_abi)
            return HexBytes(selector + encode(_abi_types(method_abi["inputs"]), normalized))
        raise DeploymentConfigError(
            f"Could not find ABI for '{self.name}.{method_name}' "
            f"with {len(args)} arg(s) and given type(s)"
        )

    def decode_call(self, data: bytes) -> Tuple[str, Tuple[Any, ...]]:
        """Returns the function name and arguments encoded in call data."""
        data = HexBytes(data)
        selector, payload = data[:4], data[4:]
        for entry in self.abi:
            if entry.get("type") != "function":
                continue
            if function_abi_to_4byte_selector(entry) == selector:
                return entry["name"], decode(_abi_types(entry["inputs"]), payload)
        raise ValueError(f"Unknown selector {selector.hex()} for {self.name}")


class ContractRegistry:
    """Maps logical contract names to their compiled artifacts."""

    def __init__(self, artifacts: Dict[str, ContractArtifact]):
        self._artifacts = dict(artifacts)

    @classmethod
    def from_directory(
        cls, directory: Path, names: typing.Optional[Iterable[str]] = None
    ) -> "ContractRegistry":
        """Loads `<name>.json` artifacts; every file in the directory if no names are given."""
        directory = Path(directory)
        if not directory.is_dir():
            raise DeploymentConfigError(f"Artifacts directory not found at {directory}")
        if names is None:
            filepaths = sorted(directory.glob("*.json"))
        else:
            filepaths = [directory / f"{name}.json" for name in names]

        artifacts = dict()
        for filepath in filepaths:
            if not filepath.exists():
                raise DeploymentConfigError(f"No compiled artifact found at {filepath}")
            artifact = ContractArtifact.from_file(filepath)
            artifacts[artifact.name] = artifact
        return cls(artifacts)

    def __contains__(self, name: str) -> bool:
        return name in self._artifacts

    def __getitem__(self, name: str) -> ContractArtifact:
        return self.get(name)

    def get(self, name: str) -> ContractArtifact:
        try:
            return self._artifacts[name]
        except KeyError:
            raise DeploymentConfigError(f"No contract artifact registered for '{name}'.")

    def require(self, names: Iterable[str]) -> None:
        """Checks up front that every name is resolvable."""
        missing = [name for name in names if name not in self._artifacts]
        if missing:
            raise DeploymentConfigError(f"Missing contract artifacts: {', '.join(missing)}")
