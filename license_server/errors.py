class LicenseServerError(Exception):
    http_status = 500
    message = "Internal server error"

    def __init__(self, message=None):
        super().__init__(message or self.message)
        if message:
            self.message = message


class InvalidInput(LicenseServerError):
    http_status = 400
    message = "Invalid request"


class NotFound(LicenseServerError):
    http_status = 404
    message = "License not found or inactive"


class InvalidLicense(LicenseServerError):
    http_status = 403
    message = "Invalid or inactive license"


class Conflict(LicenseServerError):
    http_status = 409
    message = "License already activated"


class LicenseGenerationConflict(Conflict):
    message = "License generation conflict. Please try again."


class StoreUnavailable(LicenseServerError):
    http_status = 503
    message = "Database not available"


class WebhookVerificationFailed(LicenseServerError):
    http_status = 400
    message = "Webhook signature verification failed"
