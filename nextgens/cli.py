import argparse
import os
import sys

# Runs both as:
# - python -m nextgens
# - python nextgens/cli.py
if __package__ is None or __package__ == "":
    project_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
    if project_root not in sys.path:
        sys.path.insert(0, project_root)
    from nextgens.config import load_config
    from nextgens.database import DatabaseManager
    from nextgens.models import ActiveGenerator, Location
else:
    from .config import load_config
    from .database import DatabaseManager
    from .models import ActiveGenerator, Location


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="nextgens", description="NextGens generator storage tools")
    parser.add_argument("--config", default="config.yml", help="path to config.yml")
    parser.add_argument("--data-folder", default=".", help="folder holding plugins/NextGens/generators.db")
    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("init", help="create the generator and user tables")
    sub.add_parser("list", help="print every stored generator")
    sub.add_parser("count", help="print the number of stored generators")
    delete = sub.add_parser("delete", help="delete the generator stored at a location")
    delete.add_argument("--location", required=True, help="world,x,y,z")
    return parser


def _console(message: str):
    print(message, file=sys.stderr)


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    config = load_config(args.config, data_folder=args.data_folder, log_fn=_console)
    with DatabaseManager(config, log_fn=_console) as db:
        if args.command == "init":
            return 0 if db.ensure_schema() else 1
        if args.command == "count":
            count = db.count_generators()
            if count is None:
                return 1
            print(count)
            return 0
        if args.command == "list":
            result = db.load_generators()
            if not result.ok:
                return 1
            for active in result.value:
                state = "corrupted" if active.corrupted else "ok"
                print(f"{active.location.serialize()}\t{active.generator_id}\t{active.owner}\t{active.timer:.2f}\t{state}")
            return 0
        if args.command == "delete":
            try:
                location = Location.deserialize(args.location)
            except ValueError as exc:
                _console(f"[ERR] {exc}")
                return 2
            target = ActiveGenerator(owner="", location=location, generator_id="")
            result = db.delete_generator(target)
            if not result.ok:
                return 1
            print(result.value)
            return 0
    return 2


if __name__ == "__main__":
    raise SystemExit(main())
