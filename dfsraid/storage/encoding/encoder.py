"""Encodes source files into parity files."""
import logging
from dataclasses import dataclass
from typing import Dict, List

from dfsraid.models import EffectivePolicy, EncodingJob, FileStatus
from dfsraid.storage.backends.base import FileSystemBackend
from dfsraid.storage.codec import Stripe, create_stripe_codec, num_stripes, stripe_block_range
from dfsraid.storage.errors import EncodingError
from dfsraid.storage.metrics import RAID_FILES_ENCODED, RaidOperationTracker

logger = logging.getLogger(__name__)


@dataclass
class EncodeResult:
    """Outcome of encoding one file"""
    source_path: str
    parity_path: str
    stripes: int
    parity_written: bool


class FileEncoder:
    """Writes the parity file of a source file and lowers its replication.

    The parity file is stamped with the source's modification time; that
    stamp is what marks the parity as matching the current content.
    """

    def __init__(self, fs: FileSystemBackend):
        self.fs = fs

    def is_parity_current(self, source: FileStatus, policy: EffectivePolicy) -> bool:
        parity_path = policy.parity_path(source.path)
        if not self.fs.exists(parity_path):
            return False
        return self.fs.get_file_status(parity_path).modification_time == source.modification_time

    def encode_file(self, status: FileStatus, policy: EffectivePolicy) -> EncodeResult:
        """Encode one file under a policy."""
        source = self.fs.get_file_status(status.path)
        parity_path = policy.parity_path(source.path)
        stripe_count = num_stripes(source.num_blocks, policy.stripe_length)

        if self.is_parity_current(source, policy):
            self._apply_replication(source.path, parity_path, policy)
            return EncodeResult(source.path, parity_path, stripe_count, parity_written=False)

        with RaidOperationTracker("encode"):
            codec = create_stripe_codec(
                policy.erasure_code, policy.stripe_length, policy.parity_length)
            parity_blocks: List[bytes] = []
            for index in range(stripe_count):
                stripe = Stripe(
                    path=source.path,
                    index=index,
                    source_blocks=[
                        self.fs.read_block(source.path, block)
                        for block in stripe_block_range(index, policy.stripe_length, source.num_blocks)
                    ],
                    block_size=source.block_size
                )
                parity_blocks.extend(codec.encode(stripe))

            if self.fs.get_file_status(source.path).modification_time != source.modification_time:
                logger.warning(f"{source.path} changed while being encoded, leaving it for the next scan")
                return EncodeResult(source.path, parity_path, stripe_count, parity_written=False)

            tmp_path = parity_path + ".tmp"
            self.fs.write_file(
                tmp_path,
                b"".join(parity_blocks),
                replication=policy.meta_replication,
                block_size=source.block_size
            )
            if self.fs.exists(parity_path):
                self.fs.delete(parity_path)
            self.fs.rename(tmp_path, parity_path)
            self.fs.set_times(parity_path, source.modification_time)
            self._apply_replication(source.path, parity_path, policy)

        RAID_FILES_ENCODED.labels(code=policy.erasure_code.value).inc()
        logger.info(f"Encoded {source.path} ({stripe_count} stripes) into {parity_path}")
        return EncodeResult(source.path, parity_path, stripe_count, parity_written=True)

    def _apply_replication(self, source_path: str, parity_path: str,
                           policy: EffectivePolicy) -> None:
        if self.fs.get_replication(source_path) != policy.target_replication:
            self.fs.set_replication(source_path, policy.target_replication)
        if self.fs.get_replication(parity_path) != policy.meta_replication:
            self.fs.set_replication(parity_path, policy.meta_replication)

    def encode_job(self, job: EncodingJob) -> List[EncodeResult]:
        """Encode every file of a job.

        Raises:
            EncodingError: If any file failed; the others are still encoded
        """
        results = []
        failures: Dict[str, str] = {}
        for status in job.files:
            try:
                results.append(self.encode_file(status, job.policy))
            except Exception as e:
                logger.error(f"Failed to encode {status.path} in job {job.job_id}: {str(e)}")
                failures[status.path] = str(e)
        if failures:
            raise EncodingError(job.job_id, failures)
        return results
