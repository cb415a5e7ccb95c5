import argparse
import logging

from mxprovision import __version__
from mxprovision.inputs import CONFIG_FILE, InputResolver
from mxprovision.log import LOG_FILE, setup_logging
from mxprovision.pipeline import Pipeline
from mxprovision.steps import STEP_CLASSES

logger = logging.getLogger(__name__)


def build_parser():
    parser = argparse.ArgumentParser(
        prog="mxprovision",
        description="Provision a mail/web hosting server: Bind9, Postfix + OpenDKIM, Let's Encrypt.",
    )
    parser.add_argument("--config", default=CONFIG_FILE, help=f"Inputs file; prompts when absent (default: {CONFIG_FILE})")
    parser.add_argument("--log-file", default=LOG_FILE, help=f"Persistent log file (default: {LOG_FILE})")
    parser.add_argument(
        "--step",
        choices=[cls.name for cls in STEP_CLASSES],
        help="Run a single step only. Earlier steps are not checked; use at your own risk.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)
    setup_logging(args.log_file)
    logger.info("Starting server setup (mxprovision %s)", __version__)

    pipeline = Pipeline(resolver=InputResolver(config_path=args.config))
    try:
        report = pipeline.run_step(args.step) if args.step else pipeline.run()
    except KeyboardInterrupt:
        logger.error("Interrupted; re-run to continue from the beginning.")
        return 130
    except Exception:
        logger.exception("Unexpected error; the run stopped before completing.")
        return 1
    return report.exit_code
