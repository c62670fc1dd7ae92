import pathlib
import tempfile
import unittest
from unittest.mock import patch

from pfstatus.monitoring.inspector import (
    Inspector,
    JobRecord,
    TimingMetrics,
)
from pfstatus.monitoring.jobs import JobId
from pfstatus.monitoring.solver import SolverPhase, SolverStatus
from tests.unit.fakes import FakeScheduler, RecordingFilesystem, make_row


class InspectorTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.tmp = tempfile.TemporaryDirectory()
        self.scratch = pathlib.Path(self.tmp.name)
        self.fs = RecordingFilesystem()

    def tearDown(self) -> None:
        self.tmp.cleanup()

    def make_inspector(self, *rows, **kwargs) -> Inspector:
        self.scheduler = FakeScheduler(rows, **kwargs)
        return Inspector(self.scheduler, self.fs, scratch_root=self.scratch, user="jdoe")

    def make_work_dir(self, job_id: str, files: dict[str, str]) -> pathlib.Path:
        work_dir = self.scratch / f"parflow_run_{job_id}"
        work_dir.mkdir()
        for name, contents in files.items():
            path = work_dir / name
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(contents)

        return work_dir


class TestResolveJobSet(InspectorTestCase):
    def test_explicit_ids_not_checked_with_scheduler(self):
        """Explicitly given IDs are used as-is without asking the scheduler about
        them."""

        inspector = self.make_inspector()
        self.assertEqual((JobId("12"), JobId("7")), inspector.resolve_job_set("12,7,12"))
        self.assertEqual([], self.scheduler.calls)

    def test_explicit_job_id_objects(self):
        """Explicit IDs can be given as JobIds, as they are by the command line
        parser."""

        inspector = self.make_inspector()
        self.assertEqual(
            (JobId("5"), JobId("6")),
            inspector.resolve_job_set((JobId("5"), JobId("6"), JobId("5"))),
        )
        self.assertEqual([], self.scheduler.calls)

    def test_user_jobs_filtered_by_name(self):
        """Without explicit IDs, the user's jobs whose names contain the filter are
        used, in the order the scheduler lists them."""

        inspector = self.make_inspector(
            make_row("3", name="ParFlow_a"),
            make_row("1", name="other"),
            make_row("2", name="my_ParFlow_b"),
            make_row("4", name="ParFlow_c", user="someone_else"),
        )
        for explicit_ids in [None, "", []]:
            with self.subTest(explicit_ids=explicit_ids):
                self.assertEqual(
                    (JobId("3"), JobId("2")), inspector.resolve_job_set(explicit_ids)
                )

        self.assertIn(("list_jobs", "jdoe"), self.scheduler.calls)

    def test_pending_array_and_heterogeneous_jobs_listed(self):
        """Pending array ranges and heterogeneous job components are kept when listing
        the user's jobs."""

        inspector = self.make_inspector(
            make_row("1234_[1-3]", status_code="PD"), make_row("77+0")
        )
        self.assertEqual(
            (JobId("1234_[1-3]"), JobId("77+0")), inspector.resolve_job_set()
        )

    def test_filter_is_case_sensitive(self):
        inspector = self.make_inspector(make_row("3", name="parflow_a"))
        self.assertEqual(tuple(), inspector.resolve_job_set())

    def test_invalid_explicit_id(self):
        with self.assertRaises(ValueError):
            self.make_inspector().resolve_job_set("12,abc")


class TestInspectMissingJob(InspectorTestCase):
    def test_missing_job_placeholder(self):
        """A job that isn't in the scheduler's table gets a placeholder record and the
        filesystem is never touched."""

        self.make_work_dir("99", {"run.out.log": "error everywhere\n"})
        inspector = self.make_inspector(make_row("1"))

        record = inspector.inspect("99")

        self.assertEqual(JobRecord(JobId("99"), exists=False), record)
        self.assertEqual(0, record.timestep_count)
        self.assertEqual("unknown", record.solver_iterations)
        self.assertEqual("none", record.last_error)
        self.assertEqual(SolverPhase.UNKNOWN, record.solver_phase)
        self.assertEqual([], self.fs.calls)

    def test_scheduler_failure_treated_as_missing(self):
        """A failing scheduler query is treated as the job not being found."""

        inspector = self.make_inspector(make_row("1"), fail=True)
        record = inspector.inspect("1")
        self.assertFalse(record.exists)
        self.assertEqual([], self.fs.calls)


class TestInspect(InspectorTestCase):
    def test_job_without_work_dir(self):
        """A job with no working directory has zero timesteps, no logs, unknown storage
        and an unknown solver phase."""

        inspector = self.make_inspector(make_row("5", runtime="0:42", status_code="PD"))
        record = inspector.inspect("5")

        self.assertTrue(record.exists)
        self.assertEqual("0:42", record.runtime)
        self.assertEqual("PD", record.status_code)
        self.assertEqual(0, record.timestep_count)
        self.assertIsNone(record.solver_log)
        self.assertIsNone(record.output_log)
        self.assertEqual("unknown", record.storage_used)
        self.assertEqual(SolverStatus(SolverPhase.UNKNOWN), record.solver_status)
        self.assertIsNone(record.timing)
        self.assertEqual(str(self.scratch / "parflow_run_5"), record.work_dir)

    def test_running_job(self):
        """All fields are filled in from the working directory of a running job."""

        kinsol = "".join(
            f"  number of nonlinear iterations: {i}\n" for i in range(1, 31)
        )
        output_log = "step 1\nError: negative saturation in cell 12\nstep 2\nstep 3\n"
        timing = (
            "Timer,Time (s),MFLOPS (mops/s),FLOP (op)\n"
            "CLM,4.25,0,0\n"
            "PFB I/O,0.5,0,0\n"
            "Total Runtime,12.5,0,0\n"
        )
        work_dir = self.make_work_dir(
            "1234",
            {
                "run.out.press.00000.pfb": "",
                "run.out.press.00001.pfb": "",
                "run.out.press.00002.pfb": "",
                "sub/run.out.press.00003.pfb": "",
                "run.out.kinsol.log": kinsol,
                "run.out.log": output_log,
                "run.out.txt": "Starting\n",
                "run.out.timing.csv": timing,
            },
        )
        inspector = self.make_inspector(make_row("1234"))

        record = inspector.inspect("1234", num_lines=2)

        self.assertEqual(3, record.timestep_count)
        self.assertEqual(30, record.solver_iterations)
        self.assertEqual("Error: negative", record.last_error)
        self.assertNotEqual("unknown", record.storage_used)
        self.assertEqual(str(work_dir / "run.out.kinsol.log"), record.solver_log)
        self.assertEqual(
            [
                "  number of nonlinear iterations: 29",
                "  number of nonlinear iterations: 30",
            ],
            record.solver_log_tail,
        )
        self.assertEqual(["step 2", "step 3"], record.output_log_tail)
        self.assertEqual(SolverStatus(SolverPhase.RUNNING, "12.5"), record.solver_status)
        self.assertEqual(TimingMetrics("12.5", "4.25", "0.5"), record.timing)
        self.assertEqual([], record.warnings)

    def test_error_outside_tail_window_ignored(self):
        """Only the last 20 lines of the output log are searched for errors."""

        output_log = "error long ago\n" + "".join(f"step {i}\n" for i in range(20))
        self.make_work_dir("8", {"run.out.log": output_log})
        record = self.make_inspector(make_row("8")).inspect("8")
        self.assertEqual("none", record.last_error)

    def test_custom_tail_window(self):
        """The number of log lines searched for errors can be changed."""

        output_log = "error long ago\n" + "".join(f"step {i}\n" for i in range(20))
        self.make_work_dir("8", {"run.out.log": output_log})
        self.scheduler = FakeScheduler([make_row("8")])
        inspector = Inspector(
            self.scheduler, self.fs, scratch_root=self.scratch, user="jdoe", tail_window=21
        )
        self.assertEqual("error long ago", inspector.inspect("8").last_error)

    def test_logs_found_in_subdirectories(self):
        """Solver and output logs are searched for below the working directory."""

        work_dir = self.make_work_dir(
            "8", {"out/run.out.kinsol.log": "x\n", "out/run.out.log": "y\n"}
        )
        record = self.make_inspector(make_row("8")).inspect("8")
        self.assertEqual(str(work_dir / "out" / "run.out.kinsol.log"), record.solver_log)
        self.assertEqual(str(work_dir / "out" / "run.out.log"), record.output_log)

    def test_complete_job(self):
        """A job whose output file reports the problem solved is complete, even with a
        zero elapsed time in the timing file."""

        self.make_work_dir(
            "2",
            {
                "run.out.txt": "Problem solved\n",
                "run.out.timing.csv": "Total Runtime,0.000000\n",
            },
        )
        record = self.make_inspector(make_row("2")).inspect("2")
        self.assertEqual(SolverPhase.COMPLETE, record.solver_phase)
        self.assertEqual("Complete", str(record.solver_status))

    def test_starting_job(self):
        """A job whose timing file has no elapsed time yet is starting."""

        timings = ["", "Timer,Time (s)\n", "Total Runtime,0.000000,0,0\n"]
        for job_id, timing in enumerate(timings, start=30):
            with self.subTest(timing=timing):
                self.make_work_dir(str(job_id), {"run.out.timing.csv": timing})
                record = self.make_inspector(make_row(job_id)).inspect(job_id)
                self.assertEqual(SolverPhase.STARTING, record.solver_phase)
                self.assertIsNotNone(record.timing)

    def test_num_lines_larger_than_tail_window(self):
        """More than 20 lines of a log can be shown."""

        self.make_work_dir("4", {"run.out.log": "".join(f"{i}\n" for i in range(30))})
        record = self.make_inspector(make_row("4")).inspect("4", num_lines=25)
        self.assertEqual([str(i) for i in range(5, 30)], record.output_log_tail)

    def test_several_output_files(self):
        """A working directory with more than one main output file gives an unknown
        phase and a warning."""

        self.make_work_dir(
            "6",
            {
                "a.out.txt": "Problem solved\n",
                "b.out.txt": "",
                "a.out.timing.csv": "Total,1.0\n",
            },
        )
        record = self.make_inspector(make_row("6")).inspect("6")
        self.assertEqual(SolverPhase.UNKNOWN, record.solver_phase)
        self.assertEqual(1, len(record.warnings))
        self.assertIn("*.out.txt", record.warnings[0])

    def test_several_timing_files(self):
        """Several timing files give an unknown phase and a warning, unless the job is
        complete."""

        files = {"a.out.timing.csv": "Total,1.0\n", "b.out.timing.csv": "Total,2.0\n"}
        self.make_work_dir("7", files)
        record = self.make_inspector(make_row("7")).inspect("7")
        self.assertEqual(SolverPhase.UNKNOWN, record.solver_phase)
        self.assertIn("*.out.timing.csv", record.warnings[0])

        self.make_work_dir("9", files | {"a.out.txt": "Problem solved\n"})
        record = self.make_inspector(make_row("9")).inspect("9")
        self.assertEqual(SolverPhase.COMPLETE, record.solver_phase)
        self.assertIsNone(record.timing)
        self.assertEqual(1, len(record.warnings))

    def test_unreadable_logs(self):
        """Logs that can't be read are treated as empty, and the rest of the job is
        still inspected."""

        self.make_work_dir(
            "11",
            {
                "run.out.log": "error here\n",
                "run.out.kinsol.log": "  number of nonlinear iterations: 3\n",
                "run.out.timing.csv": "Total Runtime,2.5\n",
            },
        )
        denied = PermissionError(13, "Permission denied")
        with patch("pfstatus.monitoring.filesystem.tail_file", side_effect=denied):
            with self.assertLogs("pfstatus.monitoring.filesystem", level="WARNING"):
                record = self.make_inspector(make_row("11")).inspect("11")

        self.assertTrue(record.exists)
        self.assertEqual([], record.output_log_tail)
        self.assertEqual("none", record.last_error)
        self.assertEqual("unknown", record.solver_iterations)
        self.assertEqual(SolverStatus(SolverPhase.RUNNING, "2.5"), record.solver_status)

    def test_filesystem_read_only(self):
        """Inspecting a job doesn't change its working directory."""

        work_dir = self.make_work_dir("10", {"run.out.log": "x\n"})
        before = sorted(p.name for p in work_dir.rglob("*"))
        self.make_inspector(make_row("10")).inspect("10")
        self.assertEqual(before, sorted(p.name for p in work_dir.rglob("*")))


class TestInspectAll(InspectorTestCase):
    def test_one_record_per_id_in_order(self):
        inspector = self.make_inspector(make_row("1"), make_row("3"))
        records = inspector.inspect_all([JobId("3"), JobId("2"), JobId("1")])
        self.assertEqual(["3", "2", "1"], [str(record.id) for record in records])
        self.assertEqual([True, False, True], [record.exists for record in records])


if __name__ == "__main__":
    unittest.main()
