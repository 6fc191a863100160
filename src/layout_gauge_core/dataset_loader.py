"""
Validation Dataset Loader

Loads validation datasets (test cases with ground-truth sections) from JSON files.
"""

import json
from dataclasses import dataclass
from pathlib import Path

from layout_gauge_core.domain.value_objects import DetectedSection


class DatasetNotFoundError(FileNotFoundError):
    """Raised when a validation dataset cannot be located"""
    pass


@dataclass
class ValidationCase:
    """Test case: an input and its expected sections"""
    case_id: str
    input: str
    ground_truth: list[DetectedSection] | None = None  # None when the case has no reference layout


@dataclass
class ValidationDataset:
    """Named, versioned set of validation cases scoped to a task"""
    dataset_id: str
    name: str
    version: str
    task_id: str
    test_cases: list[ValidationCase]
    description: str = ""

    def get_case(self, case_id: str) -> ValidationCase | None:
        for case in self.test_cases:
            if case.case_id == case_id:
                return case
        return None


def _parse_case(data: dict, index: int) -> ValidationCase:
    """
    Create a ValidationCase from dictionary data

    Args:
        data: Test case dictionary
        index: Position in the dataset (used when case_id is absent)

    Returns:
        ValidationCase
    """
    if "input" not in data:
        raise KeyError(f"Required field 'input' is missing in test case #{index}")
    return ValidationCase(
        case_id=str(data.get("case_id", f"case_{index + 1:03d}")),
        input=data["input"],
        ground_truth=(
            [DetectedSection.from_dict(s) for s in data["ground_truth"]]
            if data.get("ground_truth") is not None
            else None
        ),
    )


def load_dataset(file_path: str | Path) -> ValidationDataset:
    """
    Load a validation dataset JSON

    Args:
        file_path: Path to the dataset JSON file

    Returns:
        ValidationDataset

    Raises:
        DatasetNotFoundError: If the file does not exist
        KeyError: If a required field is missing
    """
    path = Path(file_path)
    if not path.exists():
        raise DatasetNotFoundError(f"Validation dataset does not exist: {file_path}")

    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)

    # Validate required fields
    required_fields = ["dataset_id", "name", "version", "task_id", "test_cases"]
    for field_name in required_fields:
        if field_name not in data:
            raise KeyError(f"Required field '{field_name}' is missing: {file_path}")

    return ValidationDataset(
        dataset_id=data["dataset_id"],
        name=data["name"],
        version=str(data["version"]),
        task_id=data["task_id"],
        description=data.get("description", ""),
        test_cases=[_parse_case(tc, i) for i, tc in enumerate(data["test_cases"])],
    )


def get_available_datasets(datasets_dir: str | Path = "datasets") -> list[dict]:
    """
    Get a list of available validation datasets

    Args:
        datasets_dir: Directory containing dataset JSON files

    Returns:
        list[dict]: [{"dataset_id", "name", "version", "task_id", "file_path", "case_count"}, ...]
    """
    datasets_path = Path(datasets_dir)
    if not datasets_path.exists():
        return []

    datasets = []
    for json_file in sorted(datasets_path.glob("*.json")):
        try:
            with open(json_file, "r", encoding="utf-8") as f:
                data = json.load(f)
            if "dataset_id" in data:
                datasets.append({
                    "dataset_id": data["dataset_id"],
                    "name": data.get("name", data["dataset_id"]),
                    "version": str(data.get("version", "")),
                    "task_id": data.get("task_id", ""),
                    "file_path": str(json_file),
                    "case_count": len(data.get("test_cases", [])),
                })
        except (json.JSONDecodeError, KeyError):
            continue

    return datasets
