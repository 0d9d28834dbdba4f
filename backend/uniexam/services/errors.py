"""Exceptions raised by the session core. Routers map them to HTTP errors."""


class SessionError(Exception):
    """Base class for session lifecycle errors."""


class ExamNotAvailable(SessionError):
    """The exam does not exist, is inactive, or the student is not eligible."""


class AttemptAlreadyCompleted(SessionError):
    """Begin attempt on an exam whose progress is already completed."""


class SessionNotFound(SessionError):
    """No live session for the (student, exam) pair."""


class SessionCompleted(SessionError):
    """An answer/navigation/run event arrived after the session completed."""


class InvalidNavigation(SessionError):
    pass


class InvalidAnswer(SessionError):
    pass


class SubmissionNotPersisted(SessionError):
    """
    The session is completed locally but the remote store did not accept the
    final record. The student must be warned; their graded result may not exist
    server-side until a resync succeeds.
    """

    def __init__(self, record, error: str):
        super().__init__(f"Final submission was not saved to the server: {error}")
        self.record = record
        self.error = error
