"""Error taxonomy shared by the conversation engine and its collaborators."""


class ChatEngineError(Exception):
    pass


class InvalidIdentifier(ChatEngineError):
    def __init__(self, value: str, kind: str):
        super().__init__(f"Invalid {kind} id: {value!r}")
        self.value = value
        self.kind = kind


class NotFound(ChatEngineError):
    pass


class StoreUnavailable(ChatEngineError):
    pass


class GeneratorUnavailable(ChatEngineError):
    """The upstream model service could not be reached."""

    category = "connectivity"


class GeneratorError(ChatEngineError):
    """The upstream model service answered with a failure."""

    def __init__(self, message: str, status_code: int | None = None, category: str | None = None):
        super().__init__(message)
        self.status_code = status_code
        self.category = category or categorize(message, status_code)


class MalformedGeneratorOutput(ChatEngineError):
    pass


USER_MESSAGES = {
    "connectivity": "Cannot connect to AI service. Please check if the model server is running.",
    "model_not_found": "AI model not available. Please check the model configuration.",
    "client_request": "Invalid request to AI service. Please try again.",
    "server_side": "AI service error. Please try again in a moment.",
    "configuration": "AI service configuration error. Please contact administrator.",
}


def categorize(message: str, status_code: int | None = None) -> str:
    lowered = message.lower()
    if "model" in lowered and "not found" in lowered:
        return "model_not_found"
    if status_code is not None:
        if 400 <= status_code < 500:
            return "client_request"
        if status_code >= 500:
            return "server_side"
    if "configuration" in lowered:
        return "configuration"
    if "connect" in lowered or "timeout" in lowered or "refused" in lowered:
        return "connectivity"
    return "server_side"


def user_message(exc: Exception) -> str:
    """End-user phrasing for an error delivered on a client stream.

    Raw upstream bodies never leave the server; they are logged instead.
    """
    if isinstance(exc, (GeneratorUnavailable, GeneratorError)):
        return USER_MESSAGES[exc.category]
    if isinstance(exc, StoreUnavailable):
        return "Storage is temporarily unavailable. Your message was not lost; please retry."
    if isinstance(exc, NotFound):
        return "The requested conversation or message was not found."
    if isinstance(exc, InvalidIdentifier):
        return "The conversation identifier is not valid."
    return "Unexpected error while generating a response."
