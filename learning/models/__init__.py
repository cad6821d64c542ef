"""Learning models."""
from learning.models.progress import (
    Attempt,
    Evaluation,
    ItemProgress,
    TopicProgress,
    ConceptProgress,
    SpecialQuestion,
    WeakTopic,
)
from learning.models.session import LearningSession, ConversationEntry, Phase, create_learning_session
from learning.models.course import Course, Concept, MemorizeField
