#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
csv_merge.py

Merge per-organization CSV extracts with overlapping column sets into one
consolidated CSV, tagging every row with the enterprise it came from.

Input:
- Every .csv file in a folder (default: ./inputs), processed in name order.
- Filenames look like <enterprise>_<org>_<anything>.csv; the enterprise prefix
  (ghec, ghec-emu, ghes) becomes the value of the "Enterprise" column.
- A JSON column configuration (default: ./column-config.json):
    {
      "columns": ["Org_Name", "Repo_Name", ...],
      "columnsToExclude": ["Full_URL"],
      "duplicateCheckColumns": ["Repo_Name"]
    }

Output (utf-8-sig):
- <OUTPUT_DIR>/<OUTPUT_FILENAME>_<YYYYMMDD_HHMMSS>.csv
  Enterprise first, then the configured columns in configured order.
- Optional per-file report CSV (--out-report / REPORT_FILE).

Logs:
- Console + logs/csv_merge.log

Rules:
- Source columns that are neither configured nor excluded are reported as
  warnings (one per file) and dropped from the output.
- Excluded columns are dropped silently (informational note only).
- Any fatal problem with any file (bad filename, unknown enterprise, unreadable
  or malformed CSV) aborts the whole run; no output file is written.
- Duplicate values in duplicateCheckColumns are reported, never blocking.

Dependencies:
- pandas
- python-dotenv
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from dataclasses import dataclass, asdict, field
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

import pandas as pd
from dotenv import load_dotenv

import csv_io


# ----------------
# Output constants
# ----------------

PROVENANCE_COLUMN = "Enterprise"

# Lowercase filename prefix -> enterprise label. New enterprises are new entries.
PROVENANCE_MAPPING: Mapping[str, str] = MappingProxyType({
    "ghec": "GHEC",
    "ghec-emu": "GHEC-EMU",
    "ghes": "GHES",
})

FILENAME_SEPARATOR = "_"

# Spreadsheet numbering: header is row 1, first record is row 2
FIRST_DATA_ROW = 2

DEFAULT_INPUT_DIR = "inputs"
DEFAULT_OUTPUT_DIR = "output"
DEFAULT_OUTPUT_FILENAME = "merged_data"
DEFAULT_COLUMN_CONFIG = "column-config.json"

LOGGER_NAME = "csv_merge"
LOG_DIR = Path("logs")
LOG_FILE = "csv_merge.log"

Record = Dict[str, str]


# ------
# Errors
# ------

class MergeError(Exception):
    """Base class for every fatal merge failure."""

    kind = "MergeError"


class ConfigError(MergeError):
    kind = "ConfigInvalid"


class FilenameFormatError(MergeError):
    kind = "FilenameFormatInvalid"


class UnknownPrefixError(MergeError):
    kind = "UnknownProvenancePrefix"


class SourceUnreadableError(MergeError):
    kind = "SourceUnreadable"


class SourceMalformedError(MergeError):
    kind = "SourceMalformed"


class NoInputFilesError(MergeError):
    kind = "NoInputFiles"


class OutputWriteError(MergeError):
    kind = "OutputUnwritable"


class MergeFailedError(MergeError):
    """Raised by the pipeline when merge_files returned an unsuccessful result."""

    def __init__(self, message: str, kind: str = "MergeError"):
        super().__init__(message)
        self.kind = kind


# -------------
# Data classes
# -------------

@dataclass(frozen=True)
class ColumnConfig:
    columns: List[str]
    columns_to_exclude: List[str] = field(default_factory=list)
    duplicate_check_columns: List[str] = field(default_factory=list)


@dataclass
class Settings:
    input_dir: Path
    output_dir: Path
    output_filename: str
    column_config: Path
    report_file: Optional[Path] = None
    debug: bool = False


@dataclass
class Reconciliation:
    unexpected: List[str]
    excluded: List[str]
    warnings: List[str] = field(default_factory=list)
    notes: List[str] = field(default_factory=list)


@dataclass
class FileReport:
    file: str
    enterprise: str
    rows_read: int
    unexpected_columns: str
    excluded_columns: str
    warnings: str


@dataclass
class MergeResult:
    success: bool = False
    records: List[Record] = field(default_factory=list)
    total_files: int = 0
    total_records: int = 0
    warnings: List[str] = field(default_factory=list)
    notes: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    error_kind: Optional[str] = None
    file_reports: List[FileReport] = field(default_factory=list)


@dataclass
class DuplicateEntry:
    value: str
    count: int
    rows: List[int]


@dataclass
class DuplicateReport:
    column: str
    entries: List[DuplicateEntry] = field(default_factory=list)


@dataclass
class Summary:
    files_processed: int
    total_records: int
    output_columns: int
    warnings: int
    excluded_columns: int
    duplicate_check_columns: int
    duplicate_values: int = 0
    output_file: Optional[Path] = None


# ----------
# Logging
# ----------

def setup_logging(debug: bool, log_dir: Path = LOG_DIR) -> logging.Logger:
    """
    Configure the merge logger once per process: console + <log_dir>/csv_merge.log.
    Repeated calls return the already configured logger unchanged.
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(logging.DEBUG)

    if logger.handlers:
        return logger

    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    log_path = log_dir / LOG_FILE

    fmt = logging.Formatter(
        "%(asctime)s | %(levelname)-7s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    fh = logging.FileHandler(log_path, encoding="utf-8")
    fh.setLevel(logging.DEBUG if debug else logging.INFO)
    fh.setFormatter(fmt)

    sh = logging.StreamHandler(sys.stdout)
    sh.setLevel(logging.DEBUG if debug else logging.INFO)
    sh.setFormatter(fmt)

    logger.addHandler(fh)
    logger.addHandler(sh)
    return logger


# -------------
# Configuration
# -------------

def _string_list(raw: Dict[str, Any], key: str, required: bool = False) -> List[str]:
    value = raw.get(key)
    if value is None:
        if required:
            raise ConfigError(f'Invalid column configuration: "{key}" array is required')
        return []
    if not isinstance(value, list):
        raise ConfigError(f'Invalid column configuration: "{key}" must be an array')
    for item in value:
        if not isinstance(item, str) or not item.strip():
            raise ConfigError(f'Invalid column configuration: "{key}" must contain non-empty strings, got {item!r}')
    return list(value)


def parse_column_config(raw: Any, logger: logging.Logger) -> ColumnConfig:
    """
    Validate a decoded column configuration and build a ColumnConfig.

    - "columns" must be a non-empty array of unique, non-empty strings
    - "columnsToExclude" / "duplicateCheckColumns" are optional string arrays
    - excluded columns are removed from "columns" so they can never be output
    """
    if not isinstance(raw, dict):
        raise ConfigError("Invalid column configuration: expected a JSON object")

    columns = _string_list(raw, "columns", required=True)
    if not columns:
        raise ConfigError('Invalid column configuration: "columns" must not be empty')

    seen = set()
    dupes = []
    for c in columns:
        if c in seen and c not in dupes:
            dupes.append(c)
        seen.add(c)
    if dupes:
        raise ConfigError(f'Invalid column configuration: duplicate entries in "columns": {", ".join(dupes)}')

    exclude = list(dict.fromkeys(_string_list(raw, "columnsToExclude")))
    dup_check = list(dict.fromkeys(_string_list(raw, "duplicateCheckColumns")))

    overlap = [c for c in columns if c in exclude]
    if overlap:
        logger.warning(f"Columns listed in both columns and columnsToExclude are excluded: {', '.join(overlap)}")
        columns = [c for c in columns if c not in exclude]
        if not columns:
            raise ConfigError('Invalid column configuration: every entry of "columns" is excluded')

    return ColumnConfig(
        columns=columns,
        columns_to_exclude=exclude,
        duplicate_check_columns=dup_check,
    )


def load_column_config(config_path: Path, logger: logging.Logger) -> ColumnConfig:
    config_path = Path(config_path)
    if not config_path.is_file():
        raise ConfigError(f"Column configuration file does not exist: {config_path}")

    try:
        raw = json.loads(config_path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
        raise ConfigError(f"Error loading column configuration {config_path}: {e}") from e

    config = parse_column_config(raw, logger)
    logger.info(f"Loaded column configuration with {len(config.columns)} columns")
    if config.columns_to_exclude:
        logger.info(f"Columns to exclude: {', '.join(config.columns_to_exclude)}")
    if config.duplicate_check_columns:
        logger.info(f"Duplicate check columns: {', '.join(config.duplicate_check_columns)}")
    return config


def load_settings(env: Optional[Mapping[str, str]] = None, args: Optional[argparse.Namespace] = None) -> Settings:
    """
    Build Settings from environment variables, overridden by any CLI flags given.
    """
    env = os.environ if env is None else env

    def pick(arg_name: str, env_name: str, default: Optional[str]) -> Optional[str]:
        value = getattr(args, arg_name, None) if args is not None else None
        if value:
            return value
        return env.get(env_name) or default

    report = pick("out_report", "REPORT_FILE", None)
    return Settings(
        input_dir=Path(pick("input_dir", "INPUT_DIR", DEFAULT_INPUT_DIR)),
        output_dir=Path(pick("output_dir", "OUTPUT_DIR", DEFAULT_OUTPUT_DIR)),
        output_filename=pick("output_filename", "OUTPUT_FILENAME", DEFAULT_OUTPUT_FILENAME),
        column_config=Path(pick("column_config", "COLUMN_CONFIG_FILE", DEFAULT_COLUMN_CONFIG)),
        report_file=Path(report) if report else None,
        debug=bool(getattr(args, "debug", False)),
    )


# ----------
# Provenance
# ----------

def resolve_provenance(filename: str, mapping: Mapping[str, str] = PROVENANCE_MAPPING) -> str:
    """
    Map a filename like ghec_my-org_repos.csv to its enterprise label (GHEC).
    """
    basename = os.path.basename(filename)
    stem, _ext = os.path.splitext(basename)

    if FILENAME_SEPARATOR not in stem:
        raise FilenameFormatError(
            f"Invalid filename format: {basename}. Expected format: enterprise_org_data.csv"
        )

    prefix = stem.split(FILENAME_SEPARATOR, 1)[0].lower()
    lookup = {k.lower(): v for k, v in mapping.items()}
    if prefix not in lookup:
        raise UnknownPrefixError(f"Unknown enterprise prefix: {prefix} in file {basename}")

    return lookup[prefix]


# -------------------
# Column reconciling
# -------------------

def reconcile_columns(filename: str, headers: Sequence[str], config: ColumnConfig) -> Reconciliation:
    canonical = set(config.columns)
    exclude = set(config.columns_to_exclude)

    distinct = list(dict.fromkeys(headers))
    repeated = [h for h in distinct if list(headers).count(h) > 1]
    excluded = [h for h in distinct if h in exclude]
    unexpected = [h for h in distinct if h not in canonical and h not in exclude]

    rec = Reconciliation(unexpected=unexpected, excluded=excluded)
    if repeated:
        rec.warnings.append(
            f"{filename}: repeated column names, last value kept: {', '.join(repeated)}"
        )
    if unexpected:
        rec.warnings.append(
            f"{filename}: unexpected columns not in column configuration: {', '.join(unexpected)}"
        )
    if excluded:
        rec.notes.append(f"{filename}: dropping excluded columns: {', '.join(excluded)}")
    return rec


def filter_record(record: Record, columns_to_exclude: Sequence[str]) -> Record:
    exclude = set(columns_to_exclude)
    return {k: v for k, v in record.items() if k not in exclude}


def tag_record(record: Record, enterprise: str) -> Record:
    tagged: Record = {PROVENANCE_COLUMN: enterprise}
    for k, v in record.items():
        if k != PROVENANCE_COLUMN:
            tagged[k] = v
    return tagged


# -----------
# Merge files
# -----------

def _read_source(file_path: Path) -> Tuple[List[str], List[Record]]:
    name = csv_io.display_name(file_path)
    try:
        headers = csv_io.read_csv_headers(file_path)
        records = csv_io.read_csv_records(file_path)
    except OSError as e:
        raise SourceUnreadableError(f"Cannot read {name}: {e}") from e
    except (pd.errors.ParserError, pd.errors.ParserWarning, pd.errors.EmptyDataError, UnicodeDecodeError) as e:
        raise SourceMalformedError(f"Malformed CSV content in {name}: {e}") from e
    return headers, records


def process_file(
    file_path: Path,
    config: ColumnConfig,
    logger: logging.Logger,
) -> Tuple[List[Record], Reconciliation, FileReport]:
    """
    Returns (tagged_records, Reconciliation, FileReport) for one source file.
    Raises a MergeError subclass on anything fatal.
    """
    name = csv_io.display_name(file_path)
    enterprise = resolve_provenance(name)

    headers, records = _read_source(file_path)
    logger.debug(f"{name}: columns={headers}")

    rec = reconcile_columns(name, headers, config)
    for w in rec.warnings:
        logger.warning(w)
    for n in rec.notes:
        logger.info(n)

    tagged = [tag_record(filter_record(r, config.columns_to_exclude), enterprise) for r in records]

    report = FileReport(
        file=name,
        enterprise=enterprise,
        rows_read=len(records),
        unexpected_columns=";".join(rec.unexpected),
        excluded_columns=";".join(rec.excluded),
        warnings=" | ".join(rec.warnings),
    )
    return tagged, rec, report


def merge_files(
    files: Sequence[Path],
    config: ColumnConfig,
    logger: logging.Logger,
) -> MergeResult:
    """
    Merge every file into one tagged record list, stopping at the first failure.
    A failed result carries no records: partial merges are never returned.
    """
    result = MergeResult()
    logger.info(f"Found {len(files)} CSV file(s) to process")

    for fp in files:
        name = csv_io.display_name(fp)
        logger.info(f"Processing file: {name}")
        try:
            tagged, rec, report = process_file(fp, config, logger)
        except MergeError as e:
            msg = f"Error processing file {name}: {e}"
            logger.error(msg)
            result.success = False
            result.records = []
            result.errors.append(msg)
            result.error_kind = e.kind
            return result

        result.records.extend(tagged)
        result.warnings.extend(rec.warnings)
        result.notes.extend(rec.notes)
        result.file_reports.append(report)
        result.total_files += 1
        result.total_records += len(tagged)
        logger.info(f"Added {len(tagged)} records from {name} (Enterprise: {report.enterprise})")

    result.success = True
    logger.info(f"Successfully merged {result.total_records} records from {result.total_files} files")
    return result


# --------------
# Output ordering
# --------------

def output_columns(config: ColumnConfig) -> List[str]:
    return [PROVENANCE_COLUMN] + list(config.columns)


def order_records(records: Sequence[Record], config: ColumnConfig) -> List[Record]:
    columns = output_columns(config)
    ordered: List[Record] = []
    for r in records:
        row: Record = {}
        for c in columns:
            v = r.get(c)
            row[c] = "" if v is None else v
        ordered.append(row)
    return ordered


# -------------------
# Duplicate detection
# -------------------

def find_duplicates(
    records: Sequence[Record],
    columns: Sequence[str],
    logger: logging.Logger,
) -> List[DuplicateReport]:
    """
    Report values that occur more than once per column, ignoring blanks.
    Rows are spreadsheet line numbers (first record = row 2). Entries are sorted
    by count descending; ties keep first-seen order.
    """
    reports: List[DuplicateReport] = []

    for col in columns:
        if not any(col in r for r in records):
            logger.info(f"Duplicate check skipped: column '{col}' is not in the merged output")
            continue

        positions: Dict[str, List[int]] = {}
        for idx, r in enumerate(records):
            v = r.get(col)
            if v is None or not str(v).strip():
                continue
            positions.setdefault(v, []).append(idx + FIRST_DATA_ROW)

        entries = [
            DuplicateEntry(value=v, count=len(rows), rows=rows)
            for v, rows in positions.items()
            if len(rows) > 1
        ]
        entries.sort(key=lambda e: e.count, reverse=True)
        reports.append(DuplicateReport(column=col, entries=entries))

    return reports


def log_duplicates(reports: Sequence[DuplicateReport], logger: logging.Logger) -> None:
    for rep in reports:
        if not rep.entries:
            logger.info(f"No duplicate values in column '{rep.column}'")
            continue
        logger.warning(f"Found {len(rep.entries)} duplicate value(s) in column '{rep.column}':")
        for e in rep.entries:
            rows = ", ".join(str(r) for r in e.rows)
            logger.warning(f'  "{e.value}" appears {e.count} times (rows: {rows})')


# --------
# Pipeline
# --------

def write_file_report(reports: Sequence[FileReport], report_path: Path, logger: logging.Logger) -> None:
    rep_df = pd.DataFrame([asdict(r) for r in reports])
    if rep_df.empty:
        rep_df = pd.DataFrame(columns=[f.name for f in FileReport.__dataclass_fields__.values()])
    report_path.parent.mkdir(parents=True, exist_ok=True)
    rep_df.to_csv(report_path, index=False, encoding=csv_io.CSV_ENCODING)
    logger.info(f"Wrote file report: {report_path.resolve()} rows={len(rep_df)}")


def run_merge(settings: Settings, logger: logging.Logger) -> Summary:
    logger.info("Starting CSV merge process...")
    logger.info(f"Input directory: {settings.input_dir}")
    logger.info(f"Output directory: {settings.output_dir}")
    logger.info(f"Column config: {settings.column_config}")

    config = load_column_config(settings.column_config, logger)

    try:
        files = csv_io.find_csv_files(settings.input_dir)
    except FileNotFoundError as e:
        raise SourceUnreadableError(str(e)) from e
    if not files:
        raise NoInputFilesError(f"No CSV files found in directory: {settings.input_dir}")

    result = merge_files(files, config, logger)
    if not result.success:
        raise MergeFailedError(f"Merge failed: {', '.join(result.errors)}", kind=result.error_kind or "MergeError")

    ordered = order_records(result.records, config)
    columns = output_columns(config)

    out_path = csv_io.output_path_for(settings.output_dir, settings.output_filename)
    try:
        csv_io.write_csv_file(ordered, out_path, columns)
    except OSError as e:
        if out_path.is_file():
            out_path.unlink()
        raise OutputWriteError(f"Error writing CSV file {out_path}: {e}") from e
    logger.info(f"Successfully wrote {len(ordered)} records to {out_path}")

    if settings.report_file is not None:
        try:
            write_file_report(result.file_reports, settings.report_file, logger)
        except OSError as e:
            raise OutputWriteError(f"Error writing file report {settings.report_file}: {e}") from e

    duplicate_values = 0
    if config.duplicate_check_columns:
        dup_reports = find_duplicates(ordered, config.duplicate_check_columns, logger)
        log_duplicates(dup_reports, logger)
        duplicate_values = sum(len(r.entries) for r in dup_reports)

    summary = Summary(
        files_processed=result.total_files,
        total_records=result.total_records,
        output_columns=len(columns),
        warnings=len(result.warnings),
        excluded_columns=len(config.columns_to_exclude),
        duplicate_check_columns=len(config.duplicate_check_columns),
        duplicate_values=duplicate_values,
        output_file=out_path,
    )
    log_summary(summary, logger)
    return summary


def log_summary(summary: Summary, logger: logging.Logger) -> None:
    logger.info("=== CSV Merge Summary ===")
    logger.info(f"Files processed: {summary.files_processed}")
    logger.info(f"Total records: {summary.total_records}")
    logger.info(f"Output file: {summary.output_file}")
    logger.info(f"Columns: {summary.output_columns}")
    logger.info(f"Warnings: {summary.warnings}")
    if summary.excluded_columns:
        logger.info(f"Excluded columns: {summary.excluded_columns}")
    if summary.duplicate_check_columns:
        logger.info(f"Duplicate check columns: {summary.duplicate_check_columns} (duplicate values: {summary.duplicate_values})")
    logger.info("=========================")


# -----
# Main
# -----

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Merge enterprise CSV extracts into one consolidated CSV.")
    parser.add_argument("--input-dir", help=f"Folder containing the .csv extracts (env INPUT_DIR, default: {DEFAULT_INPUT_DIR})")
    parser.add_argument("--output-dir", help=f"Folder for the merged CSV (env OUTPUT_DIR, default: {DEFAULT_OUTPUT_DIR})")
    parser.add_argument("--output-filename", help=f"Base name of the merged CSV (env OUTPUT_FILENAME, default: {DEFAULT_OUTPUT_FILENAME})")
    parser.add_argument("--column-config", help=f"Column configuration JSON (env COLUMN_CONFIG_FILE, default: {DEFAULT_COLUMN_CONFIG})")
    parser.add_argument("--out-report", help="Optional per-file report CSV (env REPORT_FILE)")
    parser.add_argument("--debug", action="store_true", help="Enable DEBUG logging")
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    load_dotenv()
    args = build_parser().parse_args(argv)
    settings = load_settings(args=args)

    logger = setup_logging(settings.debug)

    try:
        run_merge(settings, logger)
    except MergeError as e:
        logger.error(f"CSV merge failed: {e}")
        return 1

    logger.info("CSV merge completed successfully!")
    return 0


if __name__ == "__main__":
    sys.exit(main())
