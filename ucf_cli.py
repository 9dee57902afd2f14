# -*- coding: utf-8 -*-
"""
ucf_cli.py

Command Line Interface (CLI) for managing UCF documents (EPUB and friends).

Uses the ucf_container module to perform operations like creating documents,
adding files, listing contents, extracting and verifying.
"""

import argparse
import datetime
import os
import sys
import zipfile

from ucf_container import (
    Container,
    DEFAULT_MIMETYPE,
    UcfError,
    MalformedContainerError,
    ReservedNameClashError,
    ArchiveError,
    EntryNotFoundError,
    EntryExistsError,
)

COMPRESSION_NAMES = {zipfile.ZIP_STORED: "stored", zipfile.ZIP_DEFLATED: "deflated"}

# --- Helper Functions ---


def _fail(message: str):
    print(message, file=sys.stderr)
    sys.exit(1)


def _split_path_spec(item_path: str):
    """Splits 'local/path:archive/path' into its two halves."""
    if ":" in item_path and not os.path.exists(item_path):
        local_path, archive_path = item_path.split(":", 1)
        return local_path, archive_path.replace(os.sep, "/").strip("/")
    return item_path, None


def _add_directory(ucf: Container, local_dir: str, entry_name: str, recursive: bool, compress_type: int) -> int:
    """Adds a directory entry and, if `recursive`, everything below it. Returns the number of entries added."""
    print(f'Adding directory: "{local_dir}" as "{entry_name}/"')
    if not ucf.exists(entry_name):
        ucf.mkdir(entry_name)
    added = 1
    if not recursive:
        return added

    for root, dirs, files in os.walk(local_dir):
        dirs.sort()
        relative_root = os.path.relpath(root, local_dir)
        prefix = entry_name if relative_root == "." else f"{entry_name}/{relative_root.replace(os.sep, '/')}"
        for dir_name in dirs:
            name = f"{prefix}/{dir_name}"
            if not ucf.exists(name):
                ucf.mkdir(name)
                added += 1
        for file_name in sorted(files):
            name = f"{prefix}/{file_name}"
            print(f'Adding file: "{os.path.join(root, file_name)}" as "{name}"')
            ucf.add(name, os.path.join(root, file_name), compress_type=compress_type, overwrite=True)
            added += 1
    return added


# --- Command Functions ---


def handle_create(args):
    """Handles the 'create' command."""
    try:
        with Container.create(args.container_file, args.mimetype) as ucf:
            print(f'UCF document "{args.container_file}" created with mimetype "{ucf.mimetype}".')
    except (UcfError, ArchiveError, OSError) as e:
        _fail(f'Error creating document "{args.container_file}": {e}')


def handle_add(args):
    """Handles the 'add' command."""
    compress_type = zipfile.ZIP_STORED if args.store else zipfile.ZIP_DEFLATED
    failed_count = 0
    try:
        with Container.open(args.container_file) as ucf:
            for item_path in args.paths:
                item_path, entry_name = _split_path_spec(item_path)

                if not os.path.exists(item_path):
                    print(f'Warning: Path not found, skipping: "{item_path}"', file=sys.stderr)
                    failed_count += 1
                    continue

                if entry_name is None:
                    entry_name = os.path.basename(os.path.abspath(item_path))

                try:
                    if os.path.isdir(item_path):
                        _add_directory(ucf, item_path, entry_name, args.recursive, compress_type)
                    elif os.path.isfile(item_path):
                        print(f'Adding file: "{item_path}" as "{entry_name}" (Compression: {COMPRESSION_NAMES[compress_type]})')
                        ucf.add(entry_name, item_path, compress_type=compress_type, overwrite=args.force)
                    else:
                        print(f'Warning: Path is not a file or directory, skipping: "{item_path}"', file=sys.stderr)
                except ReservedNameClashError as e:
                    print(f"Error: {e}", file=sys.stderr)
                    failed_count += 1
                except EntryExistsError as e:
                    print(f"Error: {e}. Use --force to overwrite.", file=sys.stderr)
                    failed_count += 1

            print(f'Finished adding entries to "{args.container_file}".')
    except FileNotFoundError:
        _fail(f'Error: UCF document "{args.container_file}" not found.')
    except MalformedContainerError as e:
        _fail(f'Error: "{args.container_file}" is not a valid UCF document. {e}')
    except (UcfError, ArchiveError) as e:
        _fail(f'Error adding to document "{args.container_file}": {e}')

    if failed_count > 0:
        sys.exit(1)


def handle_mkdir(args):
    """Handles the 'mkdir' command."""
    try:
        with Container.open(args.container_file) as ucf:
            for name in args.names:
                ucf.mkdir(name)
                print(f'Created directory: "{name.rstrip("/")}/"')
    except FileNotFoundError:
        _fail(f'Error: UCF document "{args.container_file}" not found.')
    except (UcfError, ArchiveError) as e:
        _fail(f"Error creating directory: {e}")


def handle_list(args):
    """Handles the 'list' command."""
    try:
        with Container.open(args.container_file, mode="r") as ucf:
            entries = ucf.entries()
            print(f'Contents of "{args.container_file}" ({ucf.mimetype}):')
            if args.long:
                print(f"{'Type':<6} {'Size':>12} {'Stored':>12} {'Method':<9} {'Offset':>10} {'Modified':<19} {'Name'}")
                print("-" * 80)
                for info in entries:
                    type_str = "Dir" if info.is_dir() else "File"
                    method = COMPRESSION_NAMES.get(info.compress_type, str(info.compress_type))
                    ts = datetime.datetime(*info.date_time).isoformat(sep=" ")
                    protected = " *" if ucf.is_protected(info) else ""
                    print(f"{type_str:<6} {info.file_size:>12} {info.compress_size:>12} {method:<9} {info.header_offset:>10} {ts:<19} {info.filename}{protected}")
                if ucf.comment:
                    print(f"Comment: {ucf.comment.decode('utf-8', errors='replace')}")
            else:
                for info in entries:
                    print(info.filename)
    except FileNotFoundError:
        _fail(f'Error: UCF document "{args.container_file}" not found.')
    except MalformedContainerError as e:
        _fail(f'Error: "{args.container_file}" is not a valid UCF document. {e}')
    except (UcfError, ArchiveError) as e:
        _fail(f'Error listing document "{args.container_file}": {e}')


def handle_extract(args):
    """Handles the 'extract' command."""
    destination = args.destination if args.destination else "."
    extracted_count = 0
    failed_count = 0
    try:
        with Container.open(args.container_file, mode="r") as ucf:
            names = args.entries if args.entries else [info.filename for info in ucf.entries()]
            print(f'Extracting to "{destination}"...')
            for entry_name in names:
                try:
                    target_path = ucf.extract(entry_name, destination)
                    print(f"  Extracting: {entry_name} -> {target_path}")
                    extracted_count += 1
                except EntryNotFoundError:
                    print(f'  -> Error: Entry "{entry_name}" not found in the document.', file=sys.stderr)
                    failed_count += 1
                except (ArchiveError, OSError) as e:
                    print(f'  -> Error extracting "{entry_name}": {e}', file=sys.stderr)
                    failed_count += 1
    except FileNotFoundError:
        _fail(f'Error: UCF document "{args.container_file}" not found.')
    except MalformedContainerError as e:
        _fail(f'Error: "{args.container_file}" is not a valid UCF document. {e}')
    except (UcfError, ArchiveError) as e:
        _fail(f'Error during extraction from "{args.container_file}": {e}')

    print(f"Extraction finished. {extracted_count} entries extracted, {failed_count} failed.")
    if failed_count > 0:
        sys.exit(1)


def handle_remove(args):
    """Handles the 'remove' command."""
    failed_count = 0
    try:
        with Container.open(args.container_file) as ucf:
            for entry_name in args.entries:
                if ucf.is_protected(entry_name):
                    print(f'Skipped protected entry: "{entry_name}"')
                    continue
                try:
                    ucf.remove(entry_name)
                    print(f'Removed: "{entry_name}"')
                except EntryNotFoundError:
                    print(f'Warning: Entry "{entry_name}" not found.', file=sys.stderr)
                    failed_count += 1
    except FileNotFoundError:
        _fail(f'Error: UCF document "{args.container_file}" not found.')
    except (UcfError, ArchiveError) as e:
        _fail(f'Error removing from document "{args.container_file}": {e}')

    if failed_count > 0:
        sys.exit(1)


def handle_rename(args):
    """Handles the 'rename' command."""
    try:
        with Container.open(args.container_file) as ucf:
            if ucf.is_protected(args.entry):
                print(f'Skipped protected entry: "{args.entry}"')
                return
            ucf.rename(args.entry, args.new_name)
            print(f'Renamed: "{args.entry}" -> "{args.new_name}"')
    except FileNotFoundError:
        _fail(f'Error: UCF document "{args.container_file}" not found.')
    except EntryNotFoundError:
        _fail(f'Error: Entry "{args.entry}" not found.')
    except (UcfError, ArchiveError) as e:
        _fail(f"Error renaming entry: {e}")


def handle_verify(args):
    """Handles the 'verify' command."""
    failed_count = 0
    for container_file in args.container_files:
        try:
            Container.verify_file_or_fail(container_file)
            print(f"{container_file}: OK")
        except FileNotFoundError:
            print(f"{container_file}: FAILED: file not found", file=sys.stderr)
            failed_count += 1
        except (UcfError, ArchiveError) as e:
            print(f"{container_file}: FAILED: {type(e).__name__}: {e}", file=sys.stderr)
            failed_count += 1

    if failed_count > 0:
        sys.exit(1)


def handle_reserved(args):
    """Handles the 'reserved' command."""
    try:
        with Container.open(args.container_file, mode="r") as ucf:
            for name in ucf.reserved_names():
                print(f"reserved   {name}")
            for name in ucf.managed_directory_names():
                print(f"directory  {name}/")
            for name in ucf.managed_file_names():
                print(f"file       {name}")
    except FileNotFoundError:
        _fail(f'Error: UCF document "{args.container_file}" not found.')
    except (UcfError, ArchiveError) as e:
        _fail(f'Error reading document "{args.container_file}": {e}')


# --- Main Execution ---


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="UCF CLI - Manage Universal Container Format documents.", epilog="Example: ucf add book.epub chapter1.html:OEBPS/chapter1.html")
    subparsers = parser.add_subparsers(dest="command", required=True, help="Available commands")

    # --- Create Command ---
    parser_create = subparsers.add_parser("create", help="Create a new (or overwrite an existing) UCF document.")
    parser_create.add_argument("container_file", help="Path to the document to create.")
    parser_create.add_argument("-m", "--mimetype", default=DEFAULT_MIMETYPE, help=f"Mimetype of the document (default: {DEFAULT_MIMETYPE}).")
    parser_create.set_defaults(func=handle_create)

    # --- Add Command ---
    parser_add = subparsers.add_parser("add", help="Add files or directories to a UCF document.")
    parser_add.add_argument("container_file", help="Path to the document.")
    parser_add.add_argument("paths", nargs="+", help="Local file(s) or director(y/ies) to add. Use 'local:archive' syntax to specify the entry name.")
    parser_add.add_argument("-r", "--recursive", action="store_true", help="Recursively add the contents of directories.")
    parser_add.add_argument("-s", "--store", action="store_true", help="Store files without compression.")
    parser_add.add_argument("-f", "--force", action="store_true", help="Overwrite existing entries.")
    parser_add.set_defaults(func=handle_add)

    # --- Mkdir Command ---
    parser_mkdir = subparsers.add_parser("mkdir", help="Create directory entries in a UCF document.")
    parser_mkdir.add_argument("container_file", help="Path to the document.")
    parser_mkdir.add_argument("names", nargs="+", help="Directory names to create.")
    parser_mkdir.set_defaults(func=handle_mkdir)

    # --- List Command ---
    parser_list = subparsers.add_parser("list", help="List contents of a UCF document.")
    parser_list.add_argument("container_file", help="Path to the document.")
    parser_list.add_argument("-l", "--long", action="store_true", help="Show detailed listing. Protected entries are marked with '*'.")
    parser_list.set_defaults(func=handle_list)

    # --- Extract Command ---
    parser_extract = subparsers.add_parser("extract", help="Extract entries from a UCF document.")
    parser_extract.add_argument("container_file", help="Path to the document.")
    parser_extract.add_argument("entries", nargs="*", help="Specific entry names to extract (default: extract all).")
    parser_extract.add_argument("-d", "--destination", help="Directory to extract files to (default: current directory).")
    parser_extract.set_defaults(func=handle_extract)

    # --- Remove Command ---
    parser_remove = subparsers.add_parser("remove", help="Remove entries from a UCF document. Protected entries are skipped.")
    parser_remove.add_argument("container_file", help="Path to the document.")
    parser_remove.add_argument("entries", nargs="+", help="Entry names to remove.")
    parser_remove.set_defaults(func=handle_remove)

    # --- Rename Command ---
    parser_rename = subparsers.add_parser("rename", help="Rename an entry in a UCF document.")
    parser_rename.add_argument("container_file", help="Path to the document.")
    parser_rename.add_argument("entry", help="Entry to rename.")
    parser_rename.add_argument("new_name", help="New entry name.")
    parser_rename.set_defaults(func=handle_rename)

    # --- Verify Command ---
    parser_verify = subparsers.add_parser("verify", help="Check that files are conformant UCF documents.")
    parser_verify.add_argument("container_files", nargs="+", help="Documents to verify.")
    parser_verify.set_defaults(func=handle_verify)

    # --- Reserved Command ---
    parser_reserved = subparsers.add_parser("reserved", help="List the reserved and managed names of a UCF document.")
    parser_reserved.add_argument("container_file", help="Path to the document.")
    parser_reserved.set_defaults(func=handle_reserved)

    return parser


def main(argv=None):
    parser = build_parser()

    # --- Parse Arguments ---
    if argv is None and len(sys.argv) == 1:
        parser.print_help(sys.stderr)
        sys.exit(1)
    args = parser.parse_args(argv)

    # --- Execute Command ---
    args.func(args)


if __name__ == "__main__":
    main()
