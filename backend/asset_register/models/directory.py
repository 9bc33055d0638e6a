"""Allocation destinations: stations, departments and employees."""

from __future__ import annotations

from typing import Optional

from sqlmodel import Field, SQLModel


class Department(SQLModel, table=True):
    __tablename__ = "department"

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(index=True, unique=True)
    manager: Optional[str] = Field(default=None)


class Station(SQLModel, table=True):
    """A physical location (petrol station, office ...) that can hold assets."""

    __tablename__ = "station"

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(index=True)
    location: Optional[str] = Field(default=None)
    manager: Optional[str] = Field(default=None)
    contact_number: Optional[str] = Field(default=None)
    # Stations may double as departments in the station/department picker
    department_id: Optional[int] = Field(default=None, foreign_key="department.id", index=True)
    remarks: Optional[str] = Field(default=None)


class Employee(SQLModel, table=True):
    __tablename__ = "employee"

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(index=True)
    department_id: Optional[int] = Field(default=None, foreign_key="department.id", index=True)
