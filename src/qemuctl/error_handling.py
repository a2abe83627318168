"""
Error Handling and Messaging System for qemuctl

This module provides the error classification used by the VM registry and
lifecycle operations, together with a handler that logs errors and renders
them with actionable suggestions.
"""

import logging
from enum import Enum
from typing import Dict, List, Optional, Any
from dataclasses import dataclass, field

from rich.console import Console
from rich.markup import escape as _escape
from rich.panel import Panel

from .core_utils import print_info, print_warning

console = Console(stderr=True)
logger = logging.getLogger(__name__)


class ErrorSeverity(Enum):
    """Error severity levels for classification"""
    INFO = "info"           # Informational message, not an error
    WARNING = "warning"     # Warning that doesn't prevent operation
    ERROR = "error"         # Error that prevents current operation
    CRITICAL = "critical"   # Error that must abort the program


class ErrorCategory(Enum):
    """Error categories for systematic classification"""
    CONFIGURATION = "configuration"
    RESOURCE = "resource"
    STORAGE = "storage"
    PROCESS = "process"
    VALIDATION = "validation"
    INTERNAL = "internal"
    UNKNOWN = "unknown"


@dataclass
class ErrorInfo:
    """Comprehensive error information structure"""
    message: str
    code: str
    severity: ErrorSeverity
    category: ErrorCategory
    details: Optional[str] = None
    suggestions: List[str] = field(default_factory=list)
    exception: Optional[BaseException] = None
    context: Dict[str, Any] = field(default_factory=dict)


class QemuctlError(Exception):
    """Base exception class for all qemuctl errors"""
    def __init__(self,
                 message: str,
                 code: str = "QEMUCTL-E000",
                 severity: ErrorSeverity = ErrorSeverity.ERROR,
                 category: ErrorCategory = ErrorCategory.UNKNOWN,
                 details: Optional[str] = None,
                 suggestions: List[str] = None,
                 context: Dict[str, Any] = None,
                 original_exception: BaseException = None):
        self.error_info = ErrorInfo(
            message=message,
            code=code,
            severity=severity,
            category=category,
            details=details,
            suggestions=suggestions or [],
            exception=original_exception,
            context=context or {}
        )
        super().__init__(message)

    @property
    def code(self) -> str:
        return self.error_info.code

    @property
    def severity(self) -> ErrorSeverity:
        return self.error_info.severity

    @property
    def category(self) -> ErrorCategory:
        return self.error_info.category

    @property
    def suggestions(self) -> List[str]:
        return self.error_info.suggestions

    @property
    def details(self) -> Optional[str]:
        return self.error_info.details

    @property
    def context(self) -> Dict[str, Any]:
        return self.error_info.context


class ValidationError(QemuctlError):
    """Input validation errors"""
    def __init__(self, message: str, **kwargs):
        kwargs.setdefault('category', ErrorCategory.VALIDATION)
        kwargs.setdefault('code', 'QEMUCTL-E800')
        super().__init__(message, **kwargs)


class VMNotFoundError(QemuctlError):
    """The requested VM name is not in the registry"""
    def __init__(self, vm_name: str, **kwargs):
        kwargs.setdefault('category', ErrorCategory.RESOURCE)
        kwargs.setdefault('code', 'QEMUCTL-E301')
        kwargs.setdefault('suggestions', ["Run 'qemuctl list' to see defined VMs"])
        kwargs.setdefault('context', {'vm_name': vm_name})
        self.vm_name = vm_name
        super().__init__(f"VM '{vm_name}' not found", **kwargs)


class VMAlreadyRunningError(QemuctlError):
    """A hypervisor process for the VM is already alive"""
    def __init__(self, vm_name: str, pids: List[int] = None, **kwargs):
        kwargs.setdefault('category', ErrorCategory.PROCESS)
        kwargs.setdefault('code', 'QEMUCTL-E703')
        kwargs.setdefault('suggestions', [f"Stop it first with 'qemuctl stop {vm_name}'"])
        kwargs.setdefault('context', {'vm_name': vm_name, 'pids': list(pids or [])})
        self.vm_name = vm_name
        self.pids = list(pids or [])
        super().__init__(f"VM '{vm_name}' is already running", **kwargs)


class ExternalCommandFailedError(QemuctlError):
    """An external tool could not be invoked at all"""
    def __init__(self, message: str, command: List[str] = None, **kwargs):
        kwargs.setdefault('category', ErrorCategory.PROCESS)
        kwargs.setdefault('code', 'QEMUCTL-E701')
        kwargs.setdefault('suggestions', [
            "Ensure QEMU is installed and on your PATH",
            "Check the QEMUCTL_QEMU_BINARY / QEMUCTL_QEMU_IMG_BINARY overrides",
        ])
        self.command = list(command or [])
        super().__init__(message, **kwargs)


class PersistError(QemuctlError):
    """The VM registry could not be written; always fatal"""
    def __init__(self, message: str, **kwargs):
        kwargs.setdefault('category', ErrorCategory.STORAGE)
        kwargs.setdefault('code', 'QEMUCTL-E601')
        kwargs.setdefault('severity', ErrorSeverity.CRITICAL)
        kwargs.setdefault('suggestions', [
            "Check disk space and permissions of the config directory",
        ])
        super().__init__(message, **kwargs)


class ErrorHandler:
    """
    Centralized error handling for qemuctl

    Logs errors at the level matching their severity and displays them
    to the user.
    """

    def __init__(self):
        self.logger = logging.getLogger('qemuctl.error_handler')
        self.error_history: List[ErrorInfo] = []
        self.max_history_size = 100

    def handle_error(self, error: BaseException, context: Dict[str, Any] = None) -> QemuctlError:
        """
        Log and display an exception

        Returns:
            QemuctlError: the (possibly converted) error
        """
        if not isinstance(error, QemuctlError):
            error = self._convert_exception(error)

        if context:
            error.error_info.context.update(context)

        self._log_error(error)
        self._add_to_error_history(error.error_info)
        self.display_error(error)
        return error

    def _convert_exception(self, exception: BaseException) -> QemuctlError:
        """Convert a standard exception to a QemuctlError"""
        if isinstance(exception, FileNotFoundError):
            return QemuctlError(
                "File or resource not found",
                code="QEMUCTL-E302",
                category=ErrorCategory.RESOURCE,
                details=str(exception),
                suggestions=["Verify the file path is correct"],
                original_exception=exception,
            )
        if isinstance(exception, (ValueError, TypeError)):
            return QemuctlError(
                "Invalid input or parameter",
                code="QEMUCTL-E801",
                category=ErrorCategory.VALIDATION,
                details=str(exception),
                original_exception=exception,
            )
        if isinstance(exception, KeyboardInterrupt):
            return QemuctlError(
                "Operation cancelled by user",
                code="QEMUCTL-E702",
                severity=ErrorSeverity.WARNING,
                category=ErrorCategory.PROCESS,
                original_exception=exception,
            )
        return QemuctlError(
            str(exception) or "An unknown error occurred",
            category=ErrorCategory.INTERNAL,
            suggestions=["Re-run with --verbose for more details"],
            original_exception=exception,
        )

    def _log_error(self, error: QemuctlError):
        log_message = f"[{error.code}] {error.severity.value.upper()}: {error}"

        if error.severity == ErrorSeverity.CRITICAL:
            self.logger.critical(log_message, exc_info=error.error_info.exception)
        elif error.severity == ErrorSeverity.ERROR:
            self.logger.error(log_message, exc_info=error.error_info.exception)
        elif error.severity == ErrorSeverity.WARNING:
            self.logger.warning(log_message)
        else:
            self.logger.info(log_message)

    def _add_to_error_history(self, error_info: ErrorInfo):
        self.error_history.append(error_info)
        if len(self.error_history) > self.max_history_size:
            self.error_history.pop(0)

    def display_error(self, error: QemuctlError):
        """Display error information to the user"""
        if error.severity == ErrorSeverity.INFO:
            print_info(f"{error}")
            for suggestion in error.suggestions:
                print_info(f"  • {suggestion}")
        elif error.severity == ErrorSeverity.WARNING:
            print_warning(f"{error}")
            for suggestion in error.suggestions:
                console.print(f"  • {suggestion}", markup=False)
        else:
            self._display_panel(error)

    def _display_panel(self, error: QemuctlError):
        critical = error.severity == ErrorSeverity.CRITICAL
        label = "CRITICAL ERROR" if critical else "Error"
        body = f"[bold red]{label} {error.code}:[/] {_escape(str(error))}"

        if error.details:
            body += f"\n\n[dim]{_escape(error.details)}[/]"

        if error.suggestions:
            body += "\n\n[yellow]Suggested Solutions:[/]"
            for suggestion in error.suggestions:
                body += f"\n  • {_escape(suggestion)}"

        title = "[white on red]CRITICAL[/]" if critical else f"[red]{error.category.value.upper()} ERROR[/]"
        console.print(Panel(body, title=title, border_style="red"))

    def get_error_history(self, limit: int = None) -> List[ErrorInfo]:
        if limit:
            return self.error_history[-limit:]
        return self.error_history


# Singleton instance for global access
_error_handler = None

def get_error_handler() -> ErrorHandler:
    """Get the global error handler instance"""
    global _error_handler
    if _error_handler is None:
        _error_handler = ErrorHandler()
    return _error_handler
