"""Unit tests for the job scheduler."""

from unittest.mock import MagicMock

import pytest

from dfsraid.models import ErasureCodeType, JobHandle, JobState, PolicyInfo
from dfsraid.storage.encoding import FileEncoder
from dfsraid.storage.errors import JobSubmissionError
from dfsraid.storage.jobs import JobMonitor, JobScheduler, LocalExecutionStrategy, SchedulerState
from dfsraid.storage.policy import PolicyLoader


class RecordingStrategy:
    """Strategy whose jobs stay running until completed by the test."""

    def __init__(self):
        self.jobs = []
        self.states = {}
        self.fail_submissions = False
        self.released = []

    def submit(self, job):
        if self.fail_submissions:
            raise JobSubmissionError("job tracker unavailable")
        self.jobs.append(job)
        self.states[job.job_id] = JobState.RUNNING
        return JobHandle(job=job)

    def poll(self, handle):
        return self.states[handle.job_id]

    def cancel(self, handle):
        return False

    def release(self, handle):
        self.released.append(handle.job_id)

    def shutdown(self):
        pass

    def complete(self, job):
        self.states[job.job_id] = JobState.SUCCEEDED

    def paths(self, index):
        return [status.path for status in self.jobs[index].files]


def build_scheduler(fs, raid_config, policy_engine, policies, strategy):
    monitor = JobMonitor(strategy)
    scheduler = JobScheduler(
        fs,
        policy_engine,
        PolicyLoader(policies=policies),
        strategy,
        monitor,
        raid_config.scheduler
    )
    return scheduler, monitor


@pytest.fixture
def files(make_file, clock):
    paths = [f'/user/raidtest/f{i}' for i in range(6)]
    for path in paths:
        make_file(path, 2)
    clock.advance(10)
    return paths


class TestJobScheduler:
    def test_batches_files_into_jobs(self, fs, raid_config, policy_engine, xor_policy, files):
        raid_config.scheduler.max_files_per_job = 4
        strategy = RecordingStrategy()
        scheduler, monitor = build_scheduler(fs, raid_config, policy_engine, [xor_policy], strategy)

        assert scheduler.run_pass() == 2
        assert strategy.paths(0) == files[:4]
        assert strategy.paths(1) == files[4:]
        assert all(job.policy.name == 'xor-policy' for job in strategy.jobs)
        assert monitor.running_jobs_count() == 2
        assert scheduler.state == SchedulerState.IDLE

    def test_file_budget_and_resume(self, fs, raid_config, policy_engine, xor_policy, files):
        raid_config.scheduler.max_files_per_job = 2
        raid_config.scheduler.max_files_per_scan = 3
        strategy = RecordingStrategy()
        scheduler, _ = build_scheduler(fs, raid_config, policy_engine, [xor_policy], strategy)

        assert scheduler.run_pass() == 2
        assert strategy.paths(0) == files[:2]
        assert strategy.paths(1) == files[2:3]
        assert scheduler.cursor.position('xor-policy') == files[2]

        assert scheduler.run_pass() == 2
        assert strategy.paths(2) == files[3:5]
        assert strategy.paths(3) == files[5:6]

    def test_job_budget(self, fs, raid_config, policy_engine, xor_policy, files):
        raid_config.scheduler.max_files_per_job = 2
        raid_config.scheduler.max_jobs_per_scan = 2
        strategy = RecordingStrategy()
        scheduler, _ = build_scheduler(fs, raid_config, policy_engine, [xor_policy], strategy)

        assert scheduler.run_pass() == 2
        assert [len(job.files) for job in strategy.jobs] == [2, 2]

    def test_in_flight_files_are_skipped_until_released(
            self, fs, raid_config, policy_engine, xor_policy, files):
        raid_config.scheduler.max_files_per_job = 3
        raid_config.scheduler.max_jobs_per_scan = 1
        strategy = RecordingStrategy()
        scheduler, monitor = build_scheduler(fs, raid_config, policy_engine, [xor_policy], strategy)

        assert scheduler.run_pass() == 1
        assert scheduler.run_pass() == 1
        # Traversal exhausted: position resets
        assert scheduler.run_pass() == 0
        assert scheduler.cursor.position('xor-policy') is None
        # Every file is inside a running job
        assert scheduler.run_pass() == 0

        strategy.complete(strategy.jobs[0])
        monitor.poll_once()
        assert scheduler.run_pass() == 1
        assert strategy.paths(2) == files[:3]

    def test_concurrency_ceiling_stalls_the_pass(
            self, fs, raid_config, policy_engine, xor_policy, files):
        raid_config.scheduler.max_files_per_job = 2
        raid_config.scheduler.max_concurrent_jobs = 1
        strategy = RecordingStrategy()
        scheduler, monitor = build_scheduler(fs, raid_config, policy_engine, [xor_policy], strategy)

        assert scheduler.run_pass() == 1
        assert scheduler.cursor.position('xor-policy') == files[1]

        assert scheduler.run_pass() == 0
        assert scheduler.cursor.position('xor-policy') == files[1]
        assert scheduler.state == SchedulerState.IDLE

        strategy.complete(strategy.jobs[0])
        monitor.poll_once()
        assert scheduler.run_pass() == 1
        assert strategy.paths(1) == files[2:4]

    def test_submission_error_stops_the_pass(
            self, fs, raid_config, policy_engine, xor_policy, files):
        raid_config.scheduler.max_files_per_job = 2
        strategy = RecordingStrategy()
        strategy.fail_submissions = True
        scheduler, monitor = build_scheduler(fs, raid_config, policy_engine, [xor_policy], strategy)

        assert scheduler.run_pass() == 0
        assert monitor.jobs_monitored() == 1
        assert monitor.jobs_failed() == 1
        assert scheduler.cursor.position('xor-policy') is None

        strategy.fail_submissions = False
        assert scheduler.run_pass() == 3
        assert strategy.paths(0) == files[:2]

    def test_jobs_never_mix_policies(self, fs, make_file, clock, raid_config, policy_engine,
                                     xor_policy, rs_policy):
        make_file('/user/raidtest/a', 2)
        make_file('/user/rstest/b', 2)
        clock.advance(10)
        strategy = RecordingStrategy()
        scheduler, _ = build_scheduler(
            fs, raid_config, policy_engine, [xor_policy, rs_policy], strategy)

        assert scheduler.run_pass() == 2
        assert [job.policy.name for job in strategy.jobs] == ['xor-policy', 'rs-policy']
        assert strategy.paths(0) == ['/user/raidtest/a']
        assert strategy.paths(1) == ['/user/rstest/b']

    def test_resumes_at_the_interrupted_policy(self, fs, make_file, clock, raid_config,
                                               policy_engine, xor_policy, rs_policy):
        make_file('/user/raidtest/a', 2)
        make_file('/user/rstest/b', 2)
        clock.advance(10)
        raid_config.scheduler.max_jobs_per_scan = 1
        strategy = LocalExecutionStrategy(FileEncoder(fs))
        recorder = MagicMock(wraps=strategy)
        scheduler, _ = build_scheduler(
            fs, raid_config, policy_engine, [xor_policy, rs_policy], recorder)

        assert scheduler.run_pass() == 1
        assert scheduler.cursor.resume_policy == 'rs-policy'
        assert scheduler.run_pass() == 1
        assert scheduler.cursor.resume_policy == 'xor-policy'
        assert scheduler.run_pass() == 0
        assert scheduler.cursor.resume_policy is None

        submitted = [c.args[0].policy.name for c in recorder.submit.call_args_list]
        assert submitted == ['xor-policy', 'rs-policy']

    def test_state_while_submitting(self, fs, raid_config, policy_engine, xor_policy, files):
        strategy = RecordingStrategy()
        scheduler, _ = build_scheduler(fs, raid_config, policy_engine, [xor_policy], strategy)
        states = []
        real_submit = strategy.submit

        def observe(job):
            states.append(scheduler.state)
            return real_submit(job)

        strategy.submit = observe
        scheduler.run_pass()
        assert states == [SchedulerState.SUBMITTING]
        assert scheduler.state == SchedulerState.IDLE

    def test_policy_errors_do_not_stop_other_policies(
            self, fs, raid_config, policy_engine, xor_policy, files):
        broken = PolicyInfo(name='broken', src_path='/user/raidtest', parent='missing')
        strategy = RecordingStrategy()
        scheduler, _ = build_scheduler(
            fs, raid_config, policy_engine, [broken, xor_policy], strategy)
        assert scheduler.run_pass() == 1
        assert [p.name for p in scheduler.policies] == ['xor-policy']

    def test_scan_loop(self, fs, raid_config, policy_engine, xor_policy, files, wait):
        strategy = LocalExecutionStrategy(FileEncoder(fs))
        scheduler, monitor = build_scheduler(fs, raid_config, policy_engine, [xor_policy], strategy)
        scheduler.start()
        try:
            assert wait(lambda: all(fs.exists('/destraid' + path) for path in files))
        finally:
            scheduler.stop()
            scheduler.join(timeout=5)
        assert monitor.jobs_monitored() == 1

    def test_stalled_loop_resumes_when_a_job_finishes(
            self, fs, raid_config, policy_engine, xor_policy, files, wait):
        raid_config.scheduler.max_files_per_job = 1
        raid_config.scheduler.max_concurrent_jobs = 1
        raid_config.scheduler.rescan_interval = 30
        strategy = LocalExecutionStrategy(FileEncoder(fs))
        monitor = JobMonitor(strategy, interval=0.05)
        scheduler = JobScheduler(
            fs, policy_engine, PolicyLoader(policies=[xor_policy]), strategy, monitor,
            raid_config.scheduler
        )
        monitor.start()
        scheduler.start()
        try:
            assert wait(lambda: monitor.jobs_succeeded() == len(files))
        finally:
            scheduler.stop()
            monitor.stop()
            scheduler.join(timeout=5)
            monitor.join(timeout=5)
        assert monitor.jobs_monitored() == len(files)
        assert all(fs.exists('/destraid' + path) for path in files)
