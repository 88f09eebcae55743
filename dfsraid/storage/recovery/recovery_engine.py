"""
Recovery engine: rebuilds a corrupted stripe of a source file from the
surviving source and parity blocks and writes a repaired copy of the file.
"""
import logging
import time
from typing import Callable, Dict, List, Sequence, Set

from dfsraid.models import EffectivePolicy, FileStatus, RecoveryResult
from dfsraid.storage.backends.base import FileSystemBackend
from dfsraid.storage.codec import (
    create_stripe_codec,
    parity_block_range,
    stripe_block_range,
    stripe_index_for_offset,
)
from dfsraid.storage.errors import BlockReadError, RecoveryError, UnrecoverableStripeError
from dfsraid.storage.metrics import RECOVERIES, RaidOperationTracker
from dfsraid.storage.policy import PolicyEngine

logger = logging.getLogger(__name__)


class RecoveryEngine:
    """Serves recovery requests against the policies of the latest scan."""

    def __init__(self, fs: FileSystemBackend, policy_engine: PolicyEngine,
                 recovery_location: str,
                 policies: Callable[[], Sequence[EffectivePolicy]],
                 clock: Callable[[], float] = time.time):
        """Initialize the recovery engine.

        Args:
            fs: File system holding source and parity files
            policy_engine: Used to find the policy covering a file
            recovery_location: Directory receiving recovered copies
            policies: Returns the currently effective policies
            clock: Source of the timestamp in recovered file names
        """
        self.fs = fs
        self.policy_engine = policy_engine
        self.recovery_location = recovery_location.rstrip("/")
        self._policies = policies
        self._clock = clock

    def recover(self, path: str, offset: int) -> RecoveryResult:
        """Reconstruct the stripe containing a byte offset of a file.

        Args:
            path: Source file path
            offset: Byte offset inside the corrupted block

        Returns:
            RecoveryResult: Where the repaired copy was written

        Raises:
            RecoveryError: If the request cannot be served
            UnrecoverableStripeError: If the stripe lost too many blocks
        """
        try:
            with RaidOperationTracker("recover"):
                result = self._recover(path, offset)
        except UnrecoverableStripeError as e:
            RECOVERIES.labels(outcome='unrecoverable').inc()
            logger.error(f"Cannot recover {path} at offset {offset}: {str(e)}")
            raise
        except RecoveryError as e:
            RECOVERIES.labels(outcome='error').inc()
            logger.error(f"Recovery of {path} at offset {offset} failed: {str(e)}")
            raise
        RECOVERIES.labels(outcome='recovered').inc()
        logger.info(f"Recovered {path} stripe {result.stripe_index} into {result.recovered_path}")
        return result

    def _source_status(self, path: str, offset: int) -> FileStatus:
        try:
            status = self.fs.get_file_status(path)
        except FileNotFoundError:
            raise RecoveryError(f"File does not exist: {path}")
        if status.is_dir:
            raise RecoveryError(f"Not a file: {path}")
        if offset < 0 or offset >= status.length:
            raise RecoveryError(f"Offset {offset} outside {path} ({status.length} bytes)")
        return status

    def _recover(self, path: str, offset: int) -> RecoveryResult:
        status = self._source_status(path, offset)
        policy = self.policy_engine.find_covering_policy(path, self._policies(), self.fs)
        if policy is None:
            raise RecoveryError(f"No policy covers {path}")
        parity_path = policy.parity_path(path)
        if not self.fs.exists(parity_path):
            raise RecoveryError(f"No parity file for {path} at {parity_path}")
        parity_status = self.fs.get_file_status(parity_path)
        if parity_status.modification_time != status.modification_time:
            raise RecoveryError(
                f"Parity {parity_path} does not match the current content of {path}")

        block_size = status.block_size
        stripe_length = policy.stripe_length
        stripe_index = stripe_index_for_offset(offset, stripe_length, block_size)
        source_range = stripe_block_range(stripe_index, stripe_length, status.num_blocks)
        parity_range = parity_block_range(
            stripe_index, policy.parity_length, parity_status.num_blocks)

        missing: Set[int] = {offset // block_size - source_range.start}
        readable: Dict[int, bytes] = {}
        for pos, block_index in enumerate(source_range):
            try:
                readable[pos] = self.fs.read_block(path, block_index)
            except BlockReadError as e:
                logger.warning(f"Unreadable source block: {str(e)}")
                missing.add(pos)
        for pos in range(policy.parity_length):
            parity_pos = stripe_length + pos
            if pos >= len(parity_range):
                missing.add(parity_pos)
                continue
            try:
                readable[parity_pos] = self.fs.read_block(parity_path, parity_range[pos])
            except BlockReadError as e:
                logger.warning(f"Unreadable parity block: {str(e)}")
                missing.add(parity_pos)

        codec = create_stripe_codec(policy.erasure_code, stripe_length, policy.parity_length)
        decoded = codec.decode(
            stripe_index,
            {pos: block for pos, block in readable.items() if pos not in missing},
            missing,
            num_source_blocks=len(source_range),
            block_size=block_size
        )

        reconstruction_required = False
        repaired: Dict[int, bytes] = {}
        for pos in sorted(p for p in missing if p < len(source_range)):
            block_index = source_range[pos]
            length = min(block_size, status.length - block_index * block_size)
            repaired[block_index] = decoded[pos][:length]
            if readable.get(pos) != repaired[block_index]:
                reconstruction_required = True

        recovered_path = self._write_copy(status, repaired)
        return RecoveryResult(
            source_path=path,
            recovered_path=recovered_path,
            stripe_index=stripe_index,
            reconstruction_required=reconstruction_required
        )

    def _write_copy(self, status: FileStatus, repaired: Dict[int, bytes]) -> str:
        blocks: List[bytes] = []
        for block_index in range(status.num_blocks):
            if block_index in repaired:
                blocks.append(repaired[block_index])
                continue
            try:
                blocks.append(self.fs.read_block(status.path, block_index))
            except BlockReadError as e:
                raise RecoveryError(
                    f"Block {block_index} of {status.path} outside the recovered "
                    f"stripe is unreadable: {str(e)}")

        recovered_path = f"{self.recovery_location}{status.path}.{int(self._clock() * 1000)}"
        tmp_path = recovered_path + ".tmp"
        self.fs.write_file(
            tmp_path,
            b"".join(blocks),
            replication=status.replication,
            block_size=status.block_size
        )
        self.fs.rename(tmp_path, recovered_path)
        return recovered_path
