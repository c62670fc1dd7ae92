"""
pfstatus.monitoring
===================

-------------------------------------------------------------------------------------------
The `pfstatus.monitoring` package gathers the status of ParFlow jobs. Scheduler queries
and filesystem reads go through small adapters that run either locally or over SSH, so
that the same inspection logic serves both.

-------------------------------------------------------------------------------------------
Modules
=======

[`hosts`][pfstatus.monitoring.hosts]:
    Machines on which shell commands are run: the local machine, or a remote machine
    reached over SSH.

[`jobs`][pfstatus.monitoring.jobs]:
    SLURM job identifiers (`JobId`) and parsing of job ID lists.

[`scheduler`][pfstatus.monitoring.scheduler]:
    Listing and querying jobs with SLURM's ``squeue``.

[`filesystem`][pfstatus.monitoring.filesystem]:
    Reading job working directories, locally or through a host's shell.

[`solver`][pfstatus.monitoring.solver]:
    Inference of the solver phase and parsing of solver logs and timing files.

[`inspector`][pfstatus.monitoring.inspector]:
    Combines the above into one `JobRecord` per job.

[`types`][pfstatus.monitoring.types]:
    Reusable type aliases such as `FilePath`.

-------------------------------------------------------------------------------------------
"""
