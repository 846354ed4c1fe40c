class AppStatusCode:
    DATA_RETRIEVED_SUCCESSFULLY = "100"
    OPERATION_SUCCESSFUL = "101"

    OPERATION_FAILED = "200"
    OPERATION_ERROR = "201"
    INVALID_INPUT = "202"
    REQUIRED_VALIDATION_ERROR = "203"
    NOT_FOUND = "204"

    AUTHENTICATION_TOKEN_INVALID = "300"
    AUTHENTICATION_TOKEN_EXPIRED = "301"
    AUTHENTICATION_UNAUTHORIZED_ACCESS = "302"
    UNAUTHORIZED_ACTION = "303"

    PRECONDITION_FAILED = "400"
    STAGE_CONFLICT = "401"
    DATA_INTEGRITY_ERROR = "402"
    EXTERNAL_SERVICE_ERROR = "403"
