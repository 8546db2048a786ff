"""hostdrive — session engine for agents driving a remote, event-delivering host.

- ``hostdrive.session``     — ``process_event()``, the single entry point
- ``hostdrive.setup_phase`` — setup ladder (host, process, root, first snapshot)
- ``hostdrive.operate``     — steady-state loop (agent, effects, snapshots, recycle)
- ``hostdrive.engine``      — stateful ``SessionEngine`` wrapper with logging
- ``hostdrive.replay``      — simulated host and scenario runner
"""

__version__ = "0.1.0"
