"""Learning constants - comprehension scale and every threshold built on it."""

# Comprehension scale (one integer score per attempt)
MIN_COMPREHENSION = 0  # No understanding
MAX_COMPREHENSION = 5  # Mastery

# Item (flashcard) mastery
SUCCESS_COMPREHENSION = 4  # An attempt at or above this counts as a success
ITEM_MASTERY_SUCCESSES = 2  # Successes needed before an item is mastered

# Topic mastery
TOPIC_MASTERY_COMPREHENSION = 5  # Full mastery for deep-dive topics
OVERVIEW_TOPIC_THRESHOLD = 3  # "Good enough to proceed" for overview topics
HIGH_LEVEL_CONCEPT = "high-level"  # Concept name under which overview topics are tracked
HIGH_LEVEL_READY_MEAN = 3.5  # Mean batch score that suggests leaving the overview

# Remedial selection defaults
STRUGGLING_THRESHOLD = 2  # Mean comprehension at or below this is struggling
PERFORMING_THRESHOLD = 4  # Mean comprehension at or above this is performing

# Spaced repetition
INITIAL_EASE = 2.5
MIN_EASE = 1.3
MAX_EASE = 4.0

# Conversation
RECENT_HISTORY_LIMIT = 10  # Entries passed to the evaluator as context
SKIP_COMMAND = "/skip"
PREVIOUS_ATTEMPTS_LIMIT = 3  # Earlier answers on the same item passed to the evaluator

# Concept name for synthesis answers not tied to one concept
DRAWING_CONNECTIONS_CONCEPT = "drawing-connections"
