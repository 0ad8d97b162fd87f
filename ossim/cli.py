import argparse
import logging
from typing import Dict, Union

from ossim.utils import load_workflow_file
from ossim.workflow import Workflow


def parse_args() -> Dict[str, Union[str, int, float, bool]]:
    parser = argparse.ArgumentParser(
        description="Run an OS concepts simulation workflow"
    )
    parser.add_argument("wf_path", help="Path to workflow")
    parser.add_argument(
        "--debug", action="store_true", help="Log every tick and jq result"
    )
    return vars(parser.parse_args())


def main() -> None:
    args = parse_args()
    if args["debug"]:
        logging.getLogger("ossim").setLevel(logging.DEBUG)
    wf = Workflow.from_dict(load_workflow_file(args["wf_path"]))
    wf.run()


if __name__ == "__main__":
    main()
