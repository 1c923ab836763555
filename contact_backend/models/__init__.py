# Importar todos los modelos para que create_all() los registre
from .submission import Submission, SubmissionStatus
from .subscriber import Subscriber
from .subscription import Subscription, SubscriptionStatus

__all__ = [
    "Submission",
    "SubmissionStatus",
    "Subscriber",
    "Subscription",
    "SubscriptionStatus",
]
