# holdmap/logger.py
from rich.console import Console
from rich.traceback import install
from rich import pretty

# Enable pretty tracebacks and pretty formatting
install(show_locals=False)
pretty.install()

# Global console logger for the whole service
console = Console()


def log_step(doc_id: str, message: str) -> None:
    """Progress line for one pipeline invocation."""
    console.log(f"[cyan]{doc_id}[/cyan] {message}")


def log_warning(message: str) -> None:
    console.log(f"[yellow]{message}[/yellow]")


def log_failure(message: str) -> None:
    console.log(f"[red]{message}[/red]")
