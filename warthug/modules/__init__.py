"""Economy subsystems: one service per subsystem plus the shared foundations."""
