"""Core types, errors and capability states shared by all subsystems."""
