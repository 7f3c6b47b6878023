class MelangeError(Exception):
    pass


class ConfigInvalid(MelangeError):
    pass


class ConfigParseError(ConfigInvalid):
    pass


class PlanningError(MelangeError):
    pass


class BuildError(MelangeError):
    pass


class EngineNotFound(BuildError):
    pass


class EngineError(BuildError):
    def __init__(
        self, message: str, command: list[str], returncode: int, stderr: str = ""
    ) -> None:
        super().__init__(message)
        self.command = command
        self.returncode = returncode
        self.stderr = stderr


class BuildFailed(BuildError):
    """One or more architecture builds of a package failed."""

    def __init__(self, package: str, failures: dict, succeeded: tuple = ()) -> None:
        self.package = package
        self.failures = dict(failures)
        self.succeeded = tuple(succeeded)
        lines = [
            f"{len(self.failures)} architecture build(s) of '{package}' failed:"
        ]
        for arch, cause in self.failures.items():
            lines.append(f"  {arch}: {cause}")
        if self.succeeded:
            built = ", ".join(str(arch) for arch in self.succeeded)
            lines.append(f"  (built successfully: {built})")
        super().__init__("\n".join(lines))


class GraphConstructionError(MelangeError):
    pass


class EmptyCorpus(GraphConstructionError):
    pass


class FilterInvariantViolation(MelangeError):
    pass


class SigningError(MelangeError):
    pass


class IdentityError(TypeError):
    pass
