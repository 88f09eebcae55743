"""Error hierarchy for the RAID subsystem."""


class RaidError(Exception):
    """Base class for RAID errors."""
    pass


class ConfigurationError(RaidError):
    """Raised when a policy cannot be resolved (cycle, missing property, duplicate)."""

    def __init__(self, message: str, policy_name: str = None):
        super().__init__(message)
        self.message = message
        self.policy_name = policy_name


class EligibilityEvaluationError(RaidError):
    """Raised when the file system could not be queried while evaluating a file."""

    def __init__(self, path: str, cause: Exception):
        super().__init__(f"Could not evaluate {path}: {cause}")
        self.path = path
        self.cause = cause


class JobSubmissionError(RaidError):
    """Raised when the execution strategy rejects an encoding job."""
    pass


class UnrecoverableStripeError(RaidError):
    """Raised when a stripe has lost more blocks than its code tolerates."""

    def __init__(self, stripe_index: int, missing: int, tolerated: int):
        super().__init__(
            f"Stripe {stripe_index} has {missing} missing blocks, "
            f"code tolerates at most {tolerated}"
        )
        self.stripe_index = stripe_index
        self.missing = missing
        self.tolerated = tolerated


class RecoveryError(RaidError):
    """Raised when a recovery request cannot be served."""
    pass


class FileSystemError(IOError):
    """Base class for distributed file system failures."""
    pass


class BlockReadError(FileSystemError):
    """Raised when a block cannot be read from any replica."""

    def __init__(self, path: str, block_index: int, reason: str):
        super().__init__(f"Cannot read block {block_index} of {path}: {reason}")
        self.path = path
        self.block_index = block_index


class CorruptBlockError(BlockReadError):
    """Every replica of the block failed checksum verification."""

    def __init__(self, path: str, block_index: int):
        super().__init__(path, block_index, "all replicas corrupt")


class MissingBlockError(BlockReadError):
    """No live node hosts a replica of the block."""

    def __init__(self, path: str, block_index: int):
        super().__init__(path, block_index, "no live replicas")


class EncodingError(RaidError):
    """Raised when one or more files of an encoding job could not be encoded."""

    def __init__(self, job_id: str, failures: dict):
        super().__init__(
            f"Job {job_id}: {len(failures)} file(s) failed: "
            + ", ".join(f"{path} ({error})" for path, error in failures.items())
        )
        self.job_id = job_id
        self.failures = failures
