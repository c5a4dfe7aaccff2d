"""Dialog orchestration: state machine, replies and result records."""
