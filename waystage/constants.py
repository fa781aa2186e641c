DEFAULT_POLL_INTERVAL = 50.0
DEFAULT_SIGNAL_TOPIC = "signals"
DEFAULT_ACTIVITY_TYPE = "HUMAN"
COMPLETION_MESSAGE = "There are no activities left to schedule."
FINISHED_RESULTS_KEPT = 1000
