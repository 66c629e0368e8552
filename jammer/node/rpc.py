"""
Chain tip lookup over the node's public gRPC API.

Calls go through grpcurl, so no protobuf stubs are compiled into the
package. The lookup runs while the node is still up, before any guard
stops it.
"""

from __future__ import annotations

import json
import logging
import re
import subprocess
from typing import Any, Protocol

from jammer.errors import DependencyMissing, RpcParseError, RpcUnavailable

logger = logging.getLogger(__name__)

BLOCK_SERVICE_METHOD = "nockchain.public.v2.NockchainBlockService/GetBlocks"
GET_BLOCKS_REQUEST = {"page": {"clientPageItemsLimit": 1}}

_HEIGHT_PATTERN = re.compile(r'"currentHeight"\s*:\s*"?([0-9]+)"?')


class NodeRpc(Protocol):
    """Protocol for the node's query interface."""

    def get_tip_height(self) -> int:
        ...


class GrpcurlNodeRpc:
    """NodeRpc that shells out to grpcurl against a plaintext endpoint."""

    def __init__(self, endpoint: str, timeout: float = 30.0, grpcurl: str = "grpcurl"):
        self.endpoint = endpoint
        self.timeout = timeout
        self.grpcurl = grpcurl

    def get_tip_height(self) -> int:
        output = self._call()
        return parse_tip_height(output)

    def _call(self) -> str:
        cmd = [
            self.grpcurl,
            "-plaintext",
            "-d",
            json.dumps(GET_BLOCKS_REQUEST, separators=(",", ":")),
            self.endpoint,
            BLOCK_SERVICE_METHOD,
        ]
        try:
            result = subprocess.run(
                cmd,
                stdin=subprocess.DEVNULL,
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except FileNotFoundError as e:
            raise DependencyMissing(
                "grpcurl is required: https://github.com/fullstorydev/grpcurl",
                grpcurl=self.grpcurl,
            ) from e
        except subprocess.TimeoutExpired as e:
            raise RpcUnavailable(
                "GetBlocks RPC timed out", endpoint=self.endpoint, timeout=self.timeout
            ) from e

        if result.returncode != 0:
            raise RpcUnavailable(
                "GetBlocks RPC failed",
                endpoint=self.endpoint,
                returncode=result.returncode,
                output=(result.stderr or result.stdout).strip(),
            )
        return result.stdout


def parse_tip_height(output: str) -> int:
    """
    Extract currentHeight from a GetBlocks reply.

    Args:
        output: grpcurl stdout (JSON).

    Returns:
        Current block height.

    Raises:
        RpcUnavailable: If the reply carries a gRPC error payload.
        RpcParseError: If no height can be read.
    """
    try:
        data = json.loads(output)
    except json.JSONDecodeError:
        data = None

    if isinstance(data, dict):
        error = data.get("error")
        if isinstance(error, dict):
            raise RpcUnavailable(
                f"gRPC error (code {error.get('code')}): {error.get('message')}"
            )
        height = _find_key(data, "currentHeight")
        if height is not None:
            return _to_height(height, output)

    match = _HEIGHT_PATTERN.search(output)
    if match is None:
        raise RpcParseError(
            "Could not parse block height from gRPC response", response=output.strip()
        )
    return int(match.group(1))


def _find_key(data: Any, key: str) -> Any:
    if isinstance(data, dict):
        if key in data:
            return data[key]
        for value in data.values():
            found = _find_key(value, key)
            if found is not None:
                return found
    elif isinstance(data, list):
        for item in data:
            found = _find_key(item, key)
            if found is not None:
                return found
    return None


def _to_height(value: Any, output: str) -> int:
    if isinstance(value, bool):
        raise RpcParseError("Block height is not an integer", response=output.strip())
    try:
        height = int(value)
    except (TypeError, ValueError) as e:
        raise RpcParseError(
            "Block height is not an integer", response=output.strip()
        ) from e
    if height < 0:
        raise RpcParseError("Block height is negative", height=height)
    return height


class ChainTipResolver:
    """Resolves the current chain tip height."""

    def __init__(self, rpc: NodeRpc):
        self.rpc = rpc

    def query(self) -> int:
        """
        Ask the running node for its tip height.

        Raises:
            RpcUnavailable: If the node cannot be queried.
            RpcParseError: If the reply has no usable height.
        """
        height = self.rpc.get_tip_height()
        if height < 0:
            raise RpcParseError("Block height is negative", height=height)
        logger.info("Current tip block: %d", height)
        return height
