from tsukimi_setup.exceptions import tsukimi_setup_exception


class EnvironmentResolutionException(tsukimi_setup_exception.TsukimiSetupException):

    def __init__(self, home_root: str, message: str = None):
        self.message = f"Could not resolve an account to provision under {home_root}."
        if message:
            self.message = f"{self.message} {message}"
        super().__init__(self.message)
