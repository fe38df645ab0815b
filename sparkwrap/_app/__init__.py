import json
import tempfile
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from sparkwrap._common import HADOOP_TOKEN_FILE_LOCATION
from sparkwrap._hadoop import HadoopConfiguration, inject_resources
from sparkwrap._identity import resolve_identity
from sparkwrap._launcher import launch
from sparkwrap._props import load_job_props
from sparkwrap._submit import SubmissionBuilder

spark_app = typer.Typer(help="Launch spark-submit on behalf of an Azkaban job")
console = Console()

# the raw vector belongs to spark-submit, nothing in it may be interpreted as our own option
PASS_THROUGH = {
    "allow_extra_args": True,
    "ignore_unknown_options": True,
    "allow_interspersed_args": False,
}


@spark_app.command(context_settings=PASS_THROUGH, add_help_option=False)
def submit(
    args: Optional[List[str]] = typer.Argument(None, help="arguments as received from the Azkaban spark job type"),
) -> None:
    """
    Reconstruct the spark-submit arguments and run it, as the proxy user if the job asks for it.
    """
    launch(args or [])


@spark_app.command(context_settings=PASS_THROUGH)
def reconstruct(
    props_file: Optional[Path] = typer.Option(
        None,
        "--props",
        "-p",
        help="job properties to inject before rendering the tracking options",
    ),
    output_json: bool = typer.Option(
        False,
        "--json",
        "-j",
        help="Output as JSON",
    ),
    args: Optional[List[str]] = typer.Argument(None, help="arguments as received from the Azkaban spark job type"),
) -> None:
    """
    Show the argument vector spark-submit would receive, without resolving identities or submitting anything.
    """
    with tempfile.TemporaryDirectory(prefix="_sparkwrap_inject_") as inject_dir:
        extra_resources: list[Path] = []
        if props_file is not None:
            extra_resources.append(inject_resources(load_job_props(props_file), Path(inject_dir)))
        conf = HadoopConfiguration.from_environment(extra_resources)
        new_args = SubmissionBuilder(conf).build(args or [])

    if output_json:
        print(json.dumps(list(new_args), indent=2))
        return

    table = Table(title="spark-submit arguments")
    table.add_column("#", style="cyan", justify="right")
    table.add_column("Argument", style="white")
    for idx, arg in enumerate(new_args):
        table.add_row(str(idx), escape(arg))

    console.print(table)


@spark_app.command()
def identity(
    props_file: Optional[Path] = typer.Option(
        None,
        "--props",
        "-p",
        help="job properties, defaults to the file in JOB_PROP_FILE",
    ),
) -> None:
    """
    Show the identity a submission would run as.
    """
    context = resolve_identity(load_job_props(props_file))

    table = Table(title="Submission identity")
    table.add_column("Field", style="cyan")
    table.add_column("Value", style="white")
    if not context.is_impersonated:
        table.add_row("mode", "[green]ambient[/green]")
    else:
        table.add_row("mode", "[yellow]proxy[/yellow]")
        table.add_row("proxy user", escape(str(context.user)))
        table.add_row("login user", str(context.login_user))
        table.add_row(HADOOP_TOKEN_FILE_LOCATION, str(context.token_file))

    console.print(table)
