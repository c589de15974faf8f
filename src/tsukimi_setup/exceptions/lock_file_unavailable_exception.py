from tsukimi_setup.exceptions import tsukimi_setup_exception


class LockFileUnavailableException(tsukimi_setup_exception.TsukimiSetupException):

    def __init__(self, attempted_paths: list, message: str = None):
        tried = ", ".join(str(p) for p in attempted_paths)
        self.message = f"Could not open a lock file at any of: {tried}."
        if message:
            self.message = f"{self.message} {message}"
        super().__init__(self.message)
