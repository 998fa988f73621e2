"""
Error taxonomy for the moderation pipeline
"""


class ModerationError(Exception):
    """Base class for moderation pipeline errors"""


class ClassifierError(ModerationError):
    """A single analyzer failed; its contribution falls back to a fixed result"""

    def __init__(self, classifier, message):
        super().__init__(f"{classifier}: {message}")
        self.classifier = classifier


class RuleEvaluationError(ModerationError):
    """A single auto-moderation rule failed; the rule counts as not triggered"""

    def __init__(self, rule_id, message):
        super().__init__(f"{rule_id}: {message}")
        self.rule_id = rule_id
        self.message = message


class PipelineError(ModerationError):
    """Orchestrator-level failure; the whole run fails closed"""


class ReportValidationError(ModerationError):
    """Malformed report input, rejected before anything is stored"""

    def __init__(self, message, field=None):
        super().__init__(message)
        self.message = message
        self.field = field


class NotFoundError(ModerationError):
    """Queue item, report or content does not exist"""

    def __init__(self, kind, identifier):
        super().__init__(f"{kind} {identifier} not found")
        self.kind = kind
        self.identifier = identifier
