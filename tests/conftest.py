import csv

import pytest

from healthviz.config import HealthVizConfig
from healthviz.coordinator import UpdateCoordinator
from healthviz.store import DatasetStore

HEADER = [
    "Name",
    "Age",
    "Gender",
    "Blood Type",
    "Medical Condition",
    "Date of Admission",
    "Doctor",
    "Hospital",
    "Insurance Provider",
    "Billing Amount",
    "Room Number",
    "Admission Type",
    "Discharge Date",
    "Medication",
    "Test Results",
]


def _record(name, age, gender, blood, condition, admitted, hospital, insurance, billing, adm_type, discharged, result):
    return {
        "Name": name,
        "Age": age,
        "Gender": gender,
        "Blood Type": blood,
        "Medical Condition": condition,
        "Date of Admission": admitted,
        "Doctor": "Dr. Who",
        "Hospital": hospital,
        "Insurance Provider": insurance,
        "Billing Amount": billing,
        "Room Number": "101",
        "Admission Type": adm_type,
        "Discharge Date": discharged,
        "Medication": "Aspirin",
        "Test Results": result,
    }


RECORDS = [
    _record("Ann", "30", "Male", "A+", "Cancer", "2023-01-01", "Alpha", "Aetna", "100", "Emergency", "2023-01-05", "Normal"),
    _record("Ben", "50", "Female", "B-", "Diabetes", "2023-02-01", "Beta", "Medicare", "", "Urgent", "2023-02-03", "Abnormal"),
    _record("Cat", "70", "Female", "O+", "Cancer", "2023-03-10", "Alpha", "Aetna", "300", "Elective", "2023-03-20", "Abnormal"),
    _record("Dan", "15", "Male", "A+", "Asthma", "2023-04-01", "Gamma,", "Cigna", "250", "Emergency", "2023-03-30", "Weird"),
    _record("Eve", "abc", "Male", "AB+", "Cancer", "", "Beta", "Medicare", "50", "Urgent", "2023-05-02", "Normal"),
    _record("Fay", "41", "Female", "A+", "Diabetes", "2023-05-15", "  Alpha  ", "Aetna", "1000", "Emergency", "2023-05-16", "Normal"),
]


@pytest.fixture
def records():
    return [dict(r) for r in RECORDS]


@pytest.fixture
def store(records):
    return DatasetStore.build(records)


@pytest.fixture
def coordinator(store):
    c = UpdateCoordinator(HealthVizConfig(filter_cache_size=5, aggregate_cache_size=5))
    c.load(store)
    return c


@pytest.fixture
def csv_path(tmp_path, records):
    path = tmp_path / "healthcare_dataset.csv"
    with path.open("w", newline="", encoding="utf-8") as f:
        writer = csv.DictWriter(f, fieldnames=HEADER)
        writer.writeheader()
        writer.writerows(records)
    return path
