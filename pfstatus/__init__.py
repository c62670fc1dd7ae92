"""
pfstatus
========

The `pfstatus` package reports on the progress of ParFlow hydrological simulations
running as jobs under the SLURM workload manager. For each job it combines what the
scheduler says about the job with what can be read from the job's working directory:
the number of pressure output files written, the ends of the solver and output logs,
the last error reported by the solver, disk usage and timing metrics. From these it
infers the phase the solver is in (complete, running, starting or unknown).

Jobs can be inspected on the machine `pfstatus` runs on or, over SSH, on a cluster
login node.

Subpackages
-------------------------------------------------------------------------------------------
- [`monitoring`][pfstatus.monitoring]:
Querying the scheduler, reading working directories and inferring solver status.

- [`app`][pfstatus.app]:
The command line application: settings, report rendering and an interactive shell.
"""
