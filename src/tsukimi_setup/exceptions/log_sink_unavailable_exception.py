from tsukimi_setup.exceptions import tsukimi_setup_exception


class LogSinkUnavailableException(tsukimi_setup_exception.TsukimiSetupException):

    def __init__(self, attempted_paths: list, message: str = None):
        tried = ", ".join(str(p) for p in attempted_paths)
        self.message = f"Could not open a setup log at any of: {tried}."
        if message:
            self.message = f"{self.message} {message}"
        super().__init__(self.message)
