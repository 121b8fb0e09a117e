"""Module to handle input and output of excel files"""

import shutil
from typing import Any, Dict

import pandas as pd
from openpyxl import load_workbook

import hirelogic.state as state

POOL_COLUMNS = ("id", "yearsExperience", "salary", "startTimeline", "timezone", "skills", "domains")

# Proficiency assumed when a skill cell has no ":level" suffix
DEFAULT_PROFICIENCY = "proficient"


def parse_skills(cell: Any) -> Dict[str, str]:
    """parses a skills cell such as "skill_kubernetes:expert; skill_docker".

    args:
        cell: The raw cell value (string or NaN)

    returns:
        A dict of skill id -> proficiency
    """
    if pd.isna(cell):
        return {}
    skills: Dict[str, str] = {}
    for item in str(cell).split(";"):
        item = item.strip()
        if not item:
            continue
        skill, _, level = item.partition(":")
        level = level.strip() or DEFAULT_PROFICIENCY
        if level not in state.PROFICIENCY_ORDER:
            raise ValueError(f"Unknown proficiency '{level}' for skill '{skill.strip()}'")
        skills[skill.strip()] = level
    return skills


def parse_domains(cell: Any) -> frozenset[str]:
    """parses a ';'-separated domains cell into a frozenset of domain ids."""
    if pd.isna(cell):
        return frozenset()
    return frozenset(d.strip() for d in str(cell).split(";") if d.strip())


def load_candidate_pool(file_path: str, sheet_name: str) -> pd.DataFrame:
    """loads the candidate pool from a sheet with one candidate per row.

    args:
        file_path: The path to the Excel file
        sheet_name: The name of the sheet to load data from

    returns:
        A DataFrame with the POOL_COLUMNS; skills as dicts, domains as frozensets
    """

    df = pd.read_excel(file_path, sheet_name=sheet_name, engine="openpyxl")

    missing = [c for c in POOL_COLUMNS if c not in df.columns]
    if missing:
        raise ValueError(f"Sheet '{sheet_name}' is missing column(s): {', '.join(missing)}")

    pool = df.loc[:, list(POOL_COLUMNS)].copy()
    pool["skills"] = pool["skills"].map(parse_skills)
    pool["domains"] = pool["domains"].map(parse_domains)

    bad = sorted(set(pool["startTimeline"].dropna()) - set(state.START_TIMELINE_ORDER))
    if bad:
        raise ValueError(f"Unknown start timeline value(s): {', '.join(map(str, bad))}")
    return pool


def copy_excel_file(original_path: str, fname_extension: str) -> str:
    """Copies an Excel file and saves it with a new filename in the same directory.

    args:
        original_path: The path to the original Excel file
        fname_extension: A string to add to the original filename

    returns:
        The path of the copied file
    """
    new_path = original_path[:-5] + fname_extension + ".xlsx"
    shutil.copy2(original_path, new_path)
    return new_path


def save_report(file_path: str, sheet_name: str, rows: list[list[Any]]):
    """Writes a diagnosis report into a (new or cleared) sheet of an Excel file

    args:
        file_path: The path to the Excel file
        sheet_name: The name of the sheet to write the report to
        rows: Report rows; the first row is the header
    """

    wb = load_workbook(file_path)

    if sheet_name in wb.sheetnames:
        del wb[sheet_name]
    sheet = wb.create_sheet(sheet_name)

    for i, row in enumerate(rows):
        for j, value in enumerate(row):
            sheet.cell(row=i + 1, column=j + 1, value=value)

    wb.save(file_path)
