"""Error taxonomy for the execution paths.

Every error carries a ``label`` so the text shown to the user tells apart an
unreachable runtime, a failed image pull, a failure inside the sandbox and a
policy rejection.
"""


class SandtermError(Exception):
    """Base error for command execution."""

    label = "Error"

    def render(self) -> str:
        return f"{self.label}: {self}"


class RuntimeUnavailableError(SandtermError):
    """The container runtime could not be reached."""

    label = "Runtime unavailable"


class ImageResolutionError(SandtermError):
    """Inspecting the sandbox image failed for a reason other than not-found."""

    label = "Image inspection failed"


class ImagePullError(ImageResolutionError):
    """The sandbox image was missing locally and could not be pulled."""

    label = "Image pull failed"


class SandboxLifecycleError(SandtermError):
    """Creating or starting the sandbox container failed."""

    label = "Sandbox failure"


class CommandExecutionError(SandtermError):
    """Creating or running the exec instance inside the sandbox failed."""

    label = "Command failed inside sandbox"


class StreamDemuxError(CommandExecutionError):
    """The multiplexed output stream was malformed."""

    label = "Output stream error"


class ExecutionTimeoutError(SandtermError):
    """The execution request exceeded its time budget."""

    label = "Execution timed out"


class PolicyRejectedError(SandtermError):
    """The command was refused before execution."""

    label = "Rejected by policy"


class SessionClosedError(Exception):
    """The session transport went away while writing."""

    pass
