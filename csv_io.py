from __future__ import annotations

import os
import warnings
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional, Sequence

import pandas as pd


CSV_ENCODING = "utf-8-sig"


def find_csv_files(input_folder: Path) -> List[Path]:
    input_folder = Path(input_folder)
    if not input_folder.is_dir():
        raise FileNotFoundError(f"Input directory does not exist: {input_folder}")

    return sorted(
        p for p in input_folder.iterdir()
        if p.is_file() and p.suffix.lower() == ".csv"
    )


def _read_rows(csv_file: Path, nrows: Optional[int] = None) -> pd.DataFrame:
    # Row 0 is the literal header row. A data row with more fields than the
    # header must raise, never shift into an implicit index or get truncated.
    with warnings.catch_warnings():
        warnings.simplefilter("error", pd.errors.ParserWarning)
        return pd.read_csv(
            csv_file,
            header=None,
            index_col=False,
            dtype=str,
            keep_default_na=False,
            encoding=CSV_ENCODING,
            nrows=nrows,
        ).fillna("")


def read_csv_headers(csv_file: Path) -> List[str]:
    df = _read_rows(csv_file, nrows=1)
    return [str(v) for v in df.iloc[0].tolist()]


def read_csv_records(csv_file: Path) -> List[Dict[str, str]]:
    """
    Read every data row of a CSV file as an ordered column -> value dict.
    Raises FileNotFoundError for a missing path and pandas ParserError /
    EmptyDataError / ParserWarning or UnicodeDecodeError for bad content.
    Rows with fewer fields are padded with "". When a header name repeats,
    the last value under that name wins.
    """
    df = _read_rows(csv_file)
    headers = [str(v) for v in df.iloc[0].tolist()]
    return [dict(zip(headers, row)) for row in df.iloc[1:].values.tolist()]


def write_csv_file(records: Sequence[Dict[str, str]], output_file: Path, columns: Sequence[str]) -> None:
    output_file = Path(output_file)
    output_file.parent.mkdir(parents=True, exist_ok=True)

    merged_df = pd.DataFrame(list(records), columns=list(columns))
    merged_df.to_csv(output_file, index=False, encoding=CSV_ENCODING)


def timestamp_suffix(now: Optional[datetime] = None) -> str:
    return (now or datetime.now()).strftime("%Y%m%d_%H%M%S")


def output_path_for(output_dir: Path, base_name: str, now: Optional[datetime] = None) -> Path:
    return Path(output_dir) / f"{base_name}_{timestamp_suffix(now)}.csv"


def display_name(path: os.PathLike | str) -> str:
    return os.path.basename(os.fspath(path))
