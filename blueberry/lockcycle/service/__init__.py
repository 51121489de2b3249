"""Lock cycle service package.

This package contains the core service components:
- state.py: Run state, cancellation and dependencies
- timer.py: The cycle loop
- events.py: Event system
- service.py: Lifecycle manager (start/stop/dispose)
"""
from .service import BlueBerryService

__all__ = ["BlueBerryService"]
