"""
Dev task status machine and closing vocabulary.
"""
from trackdesk.exceptions import ValidationError

TODO = 'todo'
IN_PROGRESS = 'in_progress'
REVIEW = 'review'
TESTING = 'testing'
BLOCKED = 'blocked'
DONE = 'done'

STATUS_CHOICES = [
    (TODO, 'To Do'),
    (IN_PROGRESS, 'In Progress'),
    (REVIEW, 'In Review'),
    (TESTING, 'Testing'),
    (BLOCKED, 'Blocked'),
    (DONE, 'Done'),
]

TRANSITIONS = {
    TODO: {IN_PROGRESS, BLOCKED, DONE},
    IN_PROGRESS: {TODO, REVIEW, TESTING, BLOCKED, DONE},
    REVIEW: {IN_PROGRESS, TESTING, BLOCKED, DONE},
    TESTING: {IN_PROGRESS, REVIEW, BLOCKED, DONE},
    BLOCKED: {TODO, IN_PROGRESS, REVIEW, TESTING},
    DONE: {TODO, IN_PROGRESS},
}

RESOLUTION_CHOICES = [
    ('completed', 'Completed'),
    ('duplicate', 'Duplicate'),
    ('wont_do', "Won't Do"),
    ('moved', 'Moved'),
    ('invalid', 'Invalid'),
    ('obsolete', 'Obsolete'),
    ('cannot_reproduce', 'Cannot Reproduce'),
]
RESOLUTIONS = frozenset(value for value, _ in RESOLUTION_CHOICES)
DEFAULT_RESOLUTION = 'completed'

STORY_POINTS = (1, 2, 3, 5, 8, 13)

SEVERITY_CHOICES = [
    ('critical', 'Critical'),
    ('major', 'Major'),
    ('minor', 'Minor'),
    ('trivial', 'Trivial'),
]
ENVIRONMENT_CHOICES = [
    ('production', 'Production'),
    ('staging', 'Staging'),
    ('development', 'Development'),
    ('local', 'Local'),
]
DEFAULT_BUG_SEVERITY = 'major'


def ensure_transition(current, target):
    if target not in TRANSITIONS:
        raise ValidationError(f'Unknown task status: {target}', field='status')
    if target != current and target not in TRANSITIONS.get(current, ()):
        allowed = ', '.join(sorted(TRANSITIONS.get(current, ())))
        raise ValidationError(
            f'Cannot move task from {current} to {target}. Allowed: {allowed}',
            field='status',
        )


def validate_story_points(value):
    """Story points are a Fibonacci number up to 13, or None."""
    if value is None:
        return None
    message = 'Story points must be one of 1, 2, 3, 5, 8, 13'
    if isinstance(value, bool):
        raise ValidationError(message, field='story_points')
    try:
        points = int(value)
    except (TypeError, ValueError):
        raise ValidationError(message, field='story_points')
    # 2.5 and "2.5" must not truncate to 2
    if points != value and str(points) != str(value):
        raise ValidationError(message, field='story_points')
    if points not in STORY_POINTS:
        raise ValidationError(message, field='story_points')
    return points


def validate_resolution(resolution):
    if resolution not in RESOLUTIONS:
        raise ValidationError(
            f"Invalid resolution: {resolution}. Valid values: {', '.join(sorted(RESOLUTIONS))}",
            field='resolution',
        )
    return resolution
