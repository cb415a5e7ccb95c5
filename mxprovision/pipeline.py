import logging
from dataclasses import dataclass, field

from rich.table import Table
from rich.text import Text

from mxprovision.errors import ConfigValidationError, ProvisioningError
from mxprovision.inputs import InputResolver
from mxprovision.log import console
from mxprovision.steps import STEP_CLASSES, Toolbox

logger = logging.getLogger(__name__)

INPUT_RESOLUTION = "input_resolution"
COMPLETED = "Completed"
ABORTED = "Aborted"

SUCCESS = "success"
SKIPPED = "skipped"
FAILED = "failed"
NOT_RUN = "not_run"

ICONS = {SUCCESS: "✓", SKIPPED: "⏭", FAILED: "✗", NOT_RUN: "?"}
STYLES = {SUCCESS: "info", SKIPPED: "warning", FAILED: "error", NOT_RUN: "muted"}


@dataclass
class StepResult:
    name: str
    status: str
    message: str = ""


@dataclass
class PipelineReport:
    results: list = field(default_factory=list)
    state: str = ""
    context: object = None

    @property
    def exit_code(self):
        return 0 if self.state == COMPLETED else 1

    def result(self, name):
        for result in self.results:
            if result.name == name:
                return result
        return None


class Pipeline:
    """Runs the provisioning steps in their fixed order.

    Fatal failures stop the run with state ``Aborted``. Skips and non-fatal
    failures are recorded and the run continues. Nothing is retried; the
    recovery path is to fix the reported condition and run again.
    """

    def __init__(self, resolver=None, tools=None, steps=None):
        self.resolver = resolver or InputResolver()
        self.tools = tools or Toolbox()
        self.steps = steps if steps is not None else [cls(self.tools) for cls in STEP_CLASSES]

    @property
    def step_names(self):
        return [self.steps[0].name, INPUT_RESOLUTION] + [step.name for step in self.steps[1:]]

    def get_step(self, name):
        for step in self.steps:
            if step.name == name:
                return step
        raise KeyError(f"Unknown step: {name}")

    def run(self):
        report = PipelineReport()
        # prerequisites install the tools every later step needs, so it runs before inputs are read
        prerequisites, remaining = self.steps[0], self.steps[1:]
        try:
            report.results.append(self.execute(prerequisites, None))
            report.context = self.resolve_inputs(report)
            for step in remaining:
                report.results.append(self.execute(step, report.context))
        except ProvisioningError as e:
            return self.abort(report, e)
        return self.complete(report)

    def run_step(self, name):
        """Run a single step with the full precondition/validate/restart contract.

        Ordering against other steps is not enforced here; the caller accepts
        that the step may depend on work no earlier run has done.
        """
        report = PipelineReport()
        step = self.get_step(name)
        logger.warning("Running step %s on its own; earlier steps are not checked.", name)
        try:
            context = None
            if step.requires:
                context = report.context = self.resolve_inputs(report)
            report.results.append(self.execute(step, context))
        except ProvisioningError as e:
            return self.abort(report, e)
        return self.complete(report)

    def resolve_inputs(self, report):
        try:
            context = self.resolver.resolve()
        except ProvisioningError as e:
            e.step = e.step or INPUT_RESOLUTION
            raise
        except Exception as e:
            logger.debug("Input resolution failed", exc_info=True)
            raise ProvisioningError(f"Unexpected error: {e}", step=INPUT_RESOLUTION) from e
        report.results.append(StepResult(INPUT_RESOLUTION, SUCCESS, f"Inputs resolved for {context.domain}"))
        return context

    # -------------------------------------------------------------------------
    def execute(self, step, ctx):
        console.rule(f"[step]{step.title or step.name}")
        logger.info("--- %s ---", step.name)
        try:
            return self._execute(step, ctx)
        except ProvisioningError as e:
            e.step = e.step or step.name
            if step.fatal:
                raise
            self._warn(e.message, e.remediation)
            logger.warning("Step %s failed but is not fatal; continuing.", step.name)
            return StepResult(step.name, FAILED, e.message)
        except Exception as e:
            logger.error("Unexpected error in step %s: %s", step.name, e, exc_info=True)
            error = ProvisioningError(f"Unexpected error: {e}", step=step.name)
            if step.fatal:
                raise error from e
            logger.warning("Step %s failed but is not fatal; continuing.", step.name)
            return StepResult(step.name, FAILED, error.message)

    def _execute(self, step, ctx):
        reason = step.precondition(ctx)
        if reason:
            if step.skippable:
                logger.info("Skipping %s: %s", step.name, reason)
                return StepResult(step.name, SKIPPED, reason)
            raise ProvisioningError(f"Precondition failed: {reason}", step=step.name)

        if step.requires:
            ctx.require(*step.requires, step=step.name)

        gate = step.gate(ctx)
        if not gate.ok:
            if gate.fatal:
                raise ConfigValidationError(gate.message, step=step.name, remediation=gate.remediation)
            self._warn(gate.message, gate.remediation)
            logger.warning("Skipping %s: %s. Resolve the issues above and re-run.", step.name, gate.message)
            return StepResult(step.name, SKIPPED, gate.message)

        step.apply(ctx)

        result = step.validate(ctx)
        if not result.ok:
            try:
                step.rollback(ctx)
            except ProvisioningError as e:
                logger.error("Could not restore the previous files for %s: %s", step.name, e)
            if result.fatal:
                raise ConfigValidationError(result.message, step=step.name, remediation=result.remediation)
            self._warn(result.message, result.remediation)
            return StepResult(step.name, SKIPPED, result.message)
        logger.info(result.message)

        step.restart(ctx)
        logger.info("Step %s completed.", step.name)
        return StepResult(step.name, SUCCESS, result.message)

    def _warn(self, message, remediation):
        logger.warning(message)
        if remediation:
            for line in remediation.splitlines():
                logger.warning(line)

    # -------------------------------------------------------------------------
    def complete(self, report):
        report.state = COMPLETED
        self.print_report(report)
        logger.info("Provisioning completed.")
        return report

    def abort(self, report, error):
        report.state = ABORTED
        report.results.append(StepResult(error.step or "unknown", FAILED, error.message))
        self.print_report(report)
        if error.remediation:
            logger.error(error.remediation)
        logger.error("Aborted at step %s: %s", error.step, error.message)
        return report

    def print_report(self, report):
        table = Table(title=f"Provisioning status: {report.state}")
        table.add_column("Step")
        table.add_column("Status")
        table.add_column("Details")
        seen = {result.name for result in report.results}
        rows = list(report.results)
        if report.state == ABORTED:
            rows += [StepResult(name, NOT_RUN) for name in self.step_names if name not in seen]
        for result in rows:
            style = STYLES.get(result.status, "")
            table.add_row(
                result.name,
                f"[{style}]{ICONS.get(result.status, '?')} {result.status.upper()}[/]",
                Text(result.message),
            )
        console.print(table)
