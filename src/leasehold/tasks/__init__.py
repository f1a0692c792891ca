"""Optional background tasks a host may run alongside its leases."""

from leasehold.tasks.sweep import cleanup_sweep_loop, start_cleanup_sweep, stop_cleanup_sweep

__all__ = ["cleanup_sweep_loop", "start_cleanup_sweep", "stop_cleanup_sweep"]
