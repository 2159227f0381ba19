"""Import time entries from a timesheet CSV export into MongoDB.

Expected CSV format:
    Date,Duration,DecimalHours
    "Thu, Aug 28, 2025",2h 10 min,2.17
    "Wed, Aug 27, 2025",5 h 45 min,5.75

Usage:
    python scripts/import_csv.py timesheet.csv \\
        --mongodb-url mongodb://localhost:27017 \\
        --client "Acme Corp" --project "Website Redesign" --task "Development"
"""
import argparse
import asyncio
import csv
import re
import sys
from datetime import date, datetime, time, timedelta
from pathlib import Path
from typing import Optional

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from motor.motor_asyncio import AsyncIOMotorClient
from hourbook.logging_config import configure_logging
from hourbook.models.catalog import ClientCreate, ProjectCreate, TaskCreate
from hourbook.models.time_entry import TimeEntryCreate
from hourbook.repositories.mongo import MongoTimerRepository
from hourbook.services.catalog_service import CatalogService
from hourbook.services.timer_service import TimerService

WORKDAY_START = time(9, 0)


def parse_row_date(value: str) -> date:
    """Parse dates like "Thu, Aug 28, 2025" (weekday prefix optional)."""
    cleaned = re.sub(r"^[A-Za-z]+,\s*", "", value.strip().strip('"'))
    for fmt in ("%b %d, %Y", "%B %d, %Y", "%Y-%m-%d"):
        try:
            return datetime.strptime(cleaned, fmt).date()
        except ValueError:
            continue
    raise ValueError(f"Invalid date: {value}")


def parse_rows(csv_path: Path) -> list[dict]:
    """Read the CSV, skipping the header and rows that do not parse."""
    rows = []
    with csv_path.open(newline="") as handle:
        reader = csv.reader(handle)
        next(reader, None)
        for line_number, fields in enumerate(reader, start=2):
            if len(fields) < 3:
                continue
            date_str, duration_str, decimal_hours_str = fields[:3]
            try:
                rows.append({
                    "date": parse_row_date(date_str),
                    "label": duration_str.strip(),
                    "minutes": round(float(decimal_hours_str) * 60),
                })
            except ValueError as e:
                print(f"  Skipping row {line_number}: {e}")
    return rows


class CsvImporter:
    """Imports timesheet rows as stopped time entries."""

    def __init__(
        self,
        mongodb_url: str,
        db_name: str,
        client_name: Optional[str] = None,
        project_name: Optional[str] = None,
        task_name: Optional[str] = None,
        description: str = "Imported from CSV",
        dry_run: bool = False,
    ):
        self.mongodb_url = mongodb_url
        self.db_name = db_name
        self.client_name = client_name
        self.project_name = project_name
        self.task_name = task_name
        self.description = description
        self.dry_run = dry_run
        self.mongo: Optional[AsyncIOMotorClient] = None
        self.repository: Optional[MongoTimerRepository] = None

        self.client_id: Optional[str] = None
        self.project_id: Optional[str] = None
        self.task_id: Optional[str] = None

        # Stats
        self.stats = {"total": 0, "imported": 0, "skipped": 0, "failed": 0}

    async def connect(self):
        """Connect to MongoDB."""
        self.mongo = AsyncIOMotorClient(self.mongodb_url)
        self.repository = MongoTimerRepository(self.mongo[self.db_name])
        print(f"Connected to MongoDB: {self.mongodb_url}")

    async def close(self):
        """Close MongoDB connection."""
        if self.mongo:
            self.mongo.close()
            print("Closed MongoDB connection")

    async def resolve_assignment(self):
        """Find or create the client, project and task named on the command line."""
        catalog = CatalogService(self.repository)

        if self.client_name:
            matches = await self.repository.list_records("clients", {"name": self.client_name})
            if matches:
                self.client_id = matches[0]["_id"]
            elif not self.dry_run:
                self.client_id = (await catalog.create_client(ClientCreate(name=self.client_name))).id

        if self.project_name and self.client_id:
            matches = await self.repository.list_records(
                "projects", {"name": self.project_name, "client_id": self.client_id}
            )
            if matches:
                self.project_id = matches[0]["_id"]
            elif not self.dry_run:
                project = await catalog.create_project(
                    ProjectCreate(name=self.project_name, client_id=self.client_id)
                )
                self.project_id = project.id

        if self.task_name and self.project_id:
            matches = await self.repository.list_records(
                "tasks", {"name": self.task_name, "project_id": self.project_id}
            )
            if matches:
                self.task_id = matches[0]["_id"]
            elif not self.dry_run:
                task = await catalog.create_task(
                    TaskCreate(name=self.task_name, project_id=self.project_id)
                )
                self.task_id = task.id

    async def already_imported(self, day: date) -> bool:
        """True if an entry with the same assignment exists on that day."""
        day_start = datetime.combine(day, time.min)
        entries = await self.repository.list_entries(
            client_id=self.client_id,
            start_date=day_start,
            end_date=day_start + timedelta(days=1) - timedelta(microseconds=1),
        )
        return any(
            entry.client_id == self.client_id
            and entry.project_id == self.project_id
            and entry.task_id == self.task_id
            for entry in entries
        )

    async def import_rows(self, rows: list[dict]):
        """Create one stopped entry per row."""
        print(f"\n=== Importing {len(rows)} rows ===")
        service = TimerService(self.repository)

        for row in rows:
            self.stats["total"] += 1
            start_time = datetime.combine(row["date"], WORKDAY_START)

            try:
                if self.dry_run:
                    print(f"  Would import: {row['date']} - {row['label']} ({row['minutes']} min)")
                    self.stats["imported"] += 1
                    continue

                if await self.already_imported(row["date"]):
                    print(f"  Skipping {row['date']}: entry already exists")
                    self.stats["skipped"] += 1
                    continue

                await service.create_entry(TimeEntryCreate(
                    client_id=self.client_id,
                    project_id=self.project_id,
                    task_id=self.task_id,
                    description=self.description,
                    start_time=start_time,
                    end_time=start_time + timedelta(minutes=row["minutes"]),
                ))
                self.stats["imported"] += 1
                print(f"  ✓ {row['date']} - {row['label']}")

            except Exception as e:
                self.stats["failed"] += 1
                print(f"  ✗ {row['date']}: {e}")

    async def run(self, csv_path: Path):
        """Run import."""
        rows = parse_rows(csv_path)
        await self.connect()

        try:
            await self.resolve_assignment()
            await self.import_rows(rows)

            # Print summary
            print("\n=== Import Summary ===")
            for key, value in self.stats.items():
                print(f"  {key.capitalize()}: {value}")

        finally:
            await self.close()


async def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(description="Import timesheet CSV rows as time entries")
    parser.add_argument("csv_file", help="Path to the CSV file")
    parser.add_argument(
        "--mongodb-url",
        default="mongodb://localhost:27017",
        help="MongoDB connection URL",
    )
    parser.add_argument("--db-name", default="hourbook", help="MongoDB database name")
    parser.add_argument("--client", help="Client name to assign entries to")
    parser.add_argument("--project", help="Project name to assign entries to")
    parser.add_argument("--task", help="Task name to assign entries to")
    parser.add_argument(
        "--description",
        default="Imported from CSV",
        help="Description for all imported entries",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Show what would be imported without writing",
    )

    args = parser.parse_args()
    configure_logging()

    csv_path = Path(args.csv_file)
    if not csv_path.exists():
        print(f"Error: CSV file does not exist: {csv_path}")
        sys.exit(1)

    importer = CsvImporter(
        mongodb_url=args.mongodb_url,
        db_name=args.db_name,
        client_name=args.client,
        project_name=args.project,
        task_name=args.task,
        description=args.description,
        dry_run=args.dry_run,
    )

    await importer.run(csv_path)


if __name__ == "__main__":
    asyncio.run(main())
