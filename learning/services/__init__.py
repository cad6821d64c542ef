"""Learning services."""
from learning.services.session_service import SessionService
from learning.services.evaluator import AnswerEvaluator, RemoteAnswerEvaluator, EvaluationResult, EvaluationContext
from learning.services.session_locks import SessionLockRegistry
