"""
Policy resolution and file eligibility.

Policies form a hierarchy through their parent names; resolution flattens a
policy into an EffectivePolicy by taking each unset property from the nearest
ancestor that sets it. A policy without a selector is abstract: it only
serves as a parent.
"""
import logging
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Dict, Iterator, List, Mapping, Optional, Sequence

from dfsraid.config.raid_config import RaidConfig
from dfsraid.models import EffectivePolicy, ErasureCodeType, FileStatus, PolicyInfo
from dfsraid.storage.backends.base import FileSystemBackend
from dfsraid.storage.errors import ConfigurationError, EligibilityEvaluationError

logger = logging.getLogger(__name__)

INHERITED_PROPERTIES = (
    'erasure_code',
    'src_replication',
    'target_replication',
    'meta_replication',
    'stripe_length',
    'mod_time_period',
)

MAX_CODE_LENGTH = 256


def _is_abstract(policy: PolicyInfo) -> bool:
    return not policy.src_path and not policy.file_list_path


def _under(path: str, prefix: str) -> bool:
    prefix = prefix.rstrip("/")
    return not prefix or path == prefix or path.startswith(prefix + "/")


def _sort_key(status: FileStatus) -> str:
    # Directories sort as "dir/" so that a depth first walk yields paths in
    # plain string order
    return status.path + "/" if status.is_dir else status.path


def read_file_list(fs: FileSystemBackend, file_list_path: str) -> List[str]:
    """Sorted, de-duplicated paths named by a file-list file (one per line)."""
    content = fs.read_file(file_list_path).decode('utf-8')
    return sorted({line.strip() for line in content.splitlines() if line.strip()})


def policy_covers_path(policy: EffectivePolicy, path: str,
                       fs: Optional[FileSystemBackend] = None) -> bool:
    """Whether a file is selected by a policy's selector."""
    if policy.src_path:
        return _under(path, policy.src_path)
    if policy.file_list_path and fs is not None:
        return path in read_file_list(fs, policy.file_list_path)
    return False


class PolicyEngine:
    """Resolves policies and decides which files are eligible for encoding."""

    def __init__(self, config: RaidConfig, clock: Callable[[], float] = time.time):
        self.config = config
        self._clock = clock

    def _parity_settings(self, code: ErasureCodeType):
        if code == ErasureCodeType.XOR:
            return 1, self.config.raid_location
        return self.config.rs_parity_length, self.config.raidrs_location

    def resolve(self, policy: PolicyInfo,
                policies: Mapping[str, PolicyInfo]) -> EffectivePolicy:
        """Flatten a policy along its parent chain.

        Args:
            policy: Policy to resolve
            policies: All known policies by name

        Raises:
            ConfigurationError: On a parent cycle, an unknown parent, or a
                property left unset by the whole chain
        """
        chain = [policy]
        seen = {policy.name}
        parent_name = policy.parent
        while parent_name:
            if parent_name in seen:
                raise ConfigurationError(
                    f"Cycle in parent chain of policy {policy.name} at {parent_name}",
                    policy_name=policy.name
                )
            parent = policies.get(parent_name)
            if parent is None:
                raise ConfigurationError(
                    f"Policy {policy.name} names unknown parent {parent_name}",
                    policy_name=policy.name
                )
            chain.append(parent)
            seen.add(parent_name)
            parent_name = parent.parent

        values = {}
        for prop in INHERITED_PROPERTIES:
            value = next((getattr(p, prop) for p in chain if getattr(p, prop) is not None), None)
            if value is None:
                raise ConfigurationError(
                    f"Policy {policy.name} does not define {prop}", policy_name=policy.name)
            values[prop] = value

        for prop in ('src_replication', 'target_replication', 'meta_replication', 'stripe_length'):
            if values[prop] < 1:
                raise ConfigurationError(
                    f"Policy {policy.name}: {prop} must be positive, got {values[prop]}",
                    policy_name=policy.name
                )
        if values['mod_time_period'] < 0:
            raise ConfigurationError(
                f"Policy {policy.name}: modTimePeriod must not be negative",
                policy_name=policy.name
            )

        parity_length, parity_location = self._parity_settings(values['erasure_code'])
        if values['stripe_length'] + parity_length > MAX_CODE_LENGTH:
            raise ConfigurationError(
                f"Policy {policy.name}: stripe length {values['stripe_length']} plus "
                f"parity length {parity_length} exceeds {MAX_CODE_LENGTH}",
                policy_name=policy.name
            )

        return EffectivePolicy(
            name=policy.name,
            src_path=policy.src_path,
            file_list_path=policy.file_list_path,
            parity_length=parity_length,
            parity_location=parity_location,
            **values
        )

    def resolve_all(self, policies: Sequence[PolicyInfo]) -> List[EffectivePolicy]:
        """Resolve every concrete policy, in configuration order.

        A policy that fails to resolve is logged and left out; the others
        are unaffected. Abstract policies are never returned.
        """
        by_name: Dict[str, PolicyInfo] = {}
        duplicates = []
        for policy in policies:
            if policy.name in by_name:
                duplicates.append(policy)
            else:
                by_name[policy.name] = policy

        for policy in duplicates:
            error = ConfigurationError(f"Duplicate policy name {policy.name}", policy_name=policy.name)
            logger.error(f"Ignoring policy: {error.message}")

        resolved = []
        for policy in by_name.values():
            if _is_abstract(policy):
                continue
            try:
                resolved.append(self.resolve(policy, by_name))
            except ConfigurationError as e:
                logger.error(f"Ignoring policy {policy.name}: {e.message}")
        return resolved

    def _is_parity_path(self, path: str) -> bool:
        return _under(path, self.config.raid_location) or _under(path, self.config.raidrs_location)

    def is_encoded(self, status: FileStatus, policy: EffectivePolicy,
                   fs: FileSystemBackend) -> bool:
        """Whether a file has parity for its current content and final replication."""
        parity_path = policy.parity_path(status.path)
        if not fs.exists(parity_path):
            return False
        parity = fs.get_file_status(parity_path)
        return (parity.modification_time == status.modification_time
                and status.replication == policy.target_replication
                and parity.replication == policy.meta_replication)

    def is_eligible(self, status: FileStatus, policy: EffectivePolicy,
                    fs: FileSystemBackend, now: Optional[float] = None) -> bool:
        """Decide whether a file should be encoded under a policy.

        Raises:
            EligibilityEvaluationError: If the file system could not be queried
        """
        if status.is_dir or status.length <= 0 or self._is_parity_path(status.path):
            return False
        if status.replication < policy.src_replication:
            return False
        now = self._clock() if now is None else now
        if now - status.modification_time < policy.mod_time_period:
            return False
        try:
            return not self.is_encoded(status, policy, fs)
        except FileNotFoundError:
            return False
        except OSError as e:
            raise EligibilityEvaluationError(status.path, e)

    def _evaluate(self, status: FileStatus, policy: EffectivePolicy,
                  fs: FileSystemBackend, now: float) -> Optional[FileStatus]:
        try:
            return status if self.is_eligible(status, policy, fs, now) else None
        except EligibilityEvaluationError as e:
            logger.warning(f"Skipping {status.path} for this pass: {str(e)}")
            return None

    def _walk(self, fs: FileSystemBackend, root: str,
              start_after: Optional[str]) -> Iterator[List[FileStatus]]:
        """Yield the files of each directory, depth first in path order."""
        try:
            root_status = fs.get_file_status(root)
        except FileNotFoundError:
            logger.warning(f"Source path {root} does not exist")
            return
        except OSError as e:
            logger.error(f"Cannot stat {root}: {str(e)}")
            return
        if not root_status.is_dir:
            if start_after is None or root_status.path > start_after:
                yield [root_status]
            return

        yield from self._walk_directory(fs, root_status.path, start_after)

    def _walk_directory(self, fs: FileSystemBackend, directory: str,
                        start_after: Optional[str]) -> Iterator[List[FileStatus]]:
        try:
            children = sorted(fs.list_status(directory), key=_sort_key)
        except OSError as e:
            logger.error(f"Cannot list {directory}, skipping it this pass: {str(e)}")
            return

        files: List[FileStatus] = []
        for child in children:
            if child.is_dir:
                prefix = child.path.rstrip("/") + "/"
                # Every path below the directory sorts at or before start_after
                if (start_after is not None and start_after > prefix
                        and not start_after.startswith(prefix)):
                    continue
                if files:
                    yield files
                    files = []
                yield from self._walk_directory(fs, child.path, start_after)
            elif start_after is None or child.path > start_after:
                files.append(child)
        if files:
            yield files

    def _candidate_batches(self, policy: EffectivePolicy, fs: FileSystemBackend,
                           start_after: Optional[str]) -> Iterator[List[FileStatus]]:
        if policy.src_path:
            yield from self._walk(fs, policy.src_path, start_after)
            return
        try:
            paths = read_file_list(fs, policy.file_list_path)
        except OSError as e:
            logger.error(f"Cannot read file list {policy.file_list_path} "
                         f"of policy {policy.name}: {str(e)}")
            return
        statuses = []
        for path in paths:
            if start_after is not None and path <= start_after:
                continue
            try:
                statuses.append(fs.get_file_status(path))
            except FileNotFoundError:
                logger.warning(f"File {path} listed by policy {policy.name} does not exist")
            except OSError as e:
                logger.warning(f"Skipping {path} for this pass: {str(e)}")
        if statuses:
            yield statuses

    def iter_eligible_files(self, policy: EffectivePolicy, fs: FileSystemBackend,
                            start_after: Optional[str] = None,
                            traversal_threads: int = 1) -> Iterator[FileStatus]:
        """Lazily yield eligible files in path order.

        Args:
            policy: Resolved policy whose selector is walked
            fs: File system to walk
            start_after: Only files whose path sorts after this are considered
            traversal_threads: Workers evaluating the files of a directory
        """
        now = self._clock()
        if traversal_threads <= 1:
            for batch in self._candidate_batches(policy, fs, start_after):
                for status in batch:
                    if self._evaluate(status, policy, fs, now) is not None:
                        yield status
            return

        with ThreadPoolExecutor(max_workers=traversal_threads) as executor:
            for batch in self._candidate_batches(policy, fs, start_after):
                results = executor.map(lambda s: self._evaluate(s, policy, fs, now), batch)
                for status in results:
                    if status is not None:
                        yield status

    def select_eligible_files(self, policy: EffectivePolicy,
                              fs: FileSystemBackend) -> List[FileStatus]:
        """All eligible files of a policy, ordered by path."""
        return list(self.iter_eligible_files(
            policy, fs, traversal_threads=self.config.scheduler.traversal_threads))

    def find_covering_policy(self, path: str, policies: Sequence[EffectivePolicy],
                             fs: FileSystemBackend) -> Optional[EffectivePolicy]:
        """First policy whose selector matches a path."""
        for policy in policies:
            try:
                if policy_covers_path(policy, path, fs):
                    return policy
            except OSError as e:
                logger.warning(f"Cannot evaluate policy {policy.name} for {path}: {str(e)}")
        return None
