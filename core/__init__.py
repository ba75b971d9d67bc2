"""
Core Module Package.

Infrastructure shared by every fleet package.

Components:
- clock: Time abstraction (SystemClock, MockClock, epoch-ms helpers)
- config: Dataclass configuration loaded from the environment
- exceptions: FleetException hierarchy
"""
