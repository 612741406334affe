"""Task scheduling: interval math, execution, atomic claim and the tick loop.

Flow of one tick:
  - claim due tasks (conditional UPDATE pushes next_run_at to a lease)
  - run each claimed task on a bounded worker pool
  - persist the log, bump usage, dispatch notifications
  - store last_run_at and the real next_run_at

The tick is triggered by APScheduler (runner.py), POST /api/scheduler/tick
or ``python -m src.cli tick``.
"""
