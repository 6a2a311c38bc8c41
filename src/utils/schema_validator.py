# src/utils/schema_validator.py

import yaml
import pandas as pd
from typing import Dict, Any, List, Optional
from pathlib import Path

from src.utils.schemas import REQUIRED_DATASET_COLUMNS, FIELD_TYPES


class SchemaValidationError(Exception):
    """Raised when input data does not match expected schema."""


def load_expected_schema(path: Optional[str]) -> Dict[str, Any]:
    if not path or not Path(path).exists():
        return {
            "required_columns": list(REQUIRED_DATASET_COLUMNS),
            "dtypes": dict(FIELD_TYPES),
        }
    with open(path, "r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def validate_header(columns: List[str], schema_path: Optional[str] = None, logger=None) -> List[str]:
    """
    Checks the raw CSV header. Missing required columns abort the load;
    extra or reordered columns are only logged. Returns the normalized header.
    """
    expected = load_expected_schema(schema_path)
    required_cols: List[str] = expected.get("required_columns", [])

    header = [str(c).strip().lower() for c in columns]
    missing = [c for c in required_cols if c not in header]
    extra = [c for c in header if c not in required_cols]

    if missing:
        msg = f"❌ Missing required columns: {missing}"
        if logger:
            logger.error(msg)
        raise SchemaValidationError(msg)

    if logger:
        logger.info(f"All required columns present: {required_cols}")

    if extra and logger:
        logger.warning(f"Extra columns detected (ignored): {extra}")

    ordered = [c for c in header if c in required_cols]
    if ordered != required_cols and logger:
        logger.warning("Column order differs from the expected layout; matching by name.")

    return header


def validate_schema(df: pd.DataFrame, schema_path: Optional[str] = None, logger=None):
    """Validates the loaded (normalized) frame before analysis."""

    expected = load_expected_schema(schema_path)
    expected_types: Dict[str, str] = expected.get("dtypes", {})

    missing = [c for c in expected_types if c not in df.columns]
    if missing:
        msg = f"❌ Loaded dataset is missing columns: {missing}"
        if logger:
            logger.error(msg)
        raise SchemaValidationError(msg)

    if df.empty:
        if logger:
            logger.warning("⚠ Loaded dataset is empty; dtype checks skipped.")
        return

    for col, dtype in expected_types.items():
        series = df[col]
        if dtype == "date":
            if not pd.api.types.is_datetime64_any_dtype(series):
                msg = f"❌ Column `{col}` expected date but found {series.dtype}."
                if logger:
                    logger.error(msg)
                raise SchemaValidationError(msg)

        elif dtype == "float":
            if not pd.api.types.is_numeric_dtype(series):
                msg = f"❌ Column `{col}` expected float but found {series.dtype}."
                if logger:
                    logger.error(msg)
                raise SchemaValidationError(msg)

        elif dtype == "int":
            if not pd.api.types.is_integer_dtype(series):
                msg = f"❌ Column `{col}` expected int but found {series.dtype}."
                if logger:
                    logger.error(msg)
                raise SchemaValidationError(msg)

        elif dtype == "str":
            if not (pd.api.types.is_string_dtype(series) or pd.api.types.is_object_dtype(series)):
                msg = f"❌ Column `{col}` expected str but found {series.dtype}."
                if logger:
                    logger.error(msg)
                raise SchemaValidationError(msg)

    if logger:
        logger.info("✅ Schema validation passed.")
