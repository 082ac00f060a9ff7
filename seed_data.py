#!/usr/bin/env python
"""Create tables and load default categories plus a few sample tasks."""
from datetime import timedelta
from decimal import Decimal

from sqlmodel import select

from taskmanager.clock import utcnow
from taskmanager.database import SessionLocal, create_tables, seed_categories
from taskmanager.models import Category, Task
from taskmanager.services.task_store import TaskStore

# Create tables if not exist
create_tables()

db = SessionLocal()
try:
    seed_categories(db)

    if db.exec(select(Task.id).limit(1)).first() is not None:
        print("Tasks already exist, skipping sample tasks")
    else:
        work = db.exec(select(Category).where(Category.name == "Work")).first()
        personal = db.exec(select(Category).where(Category.name == "Personal")).first()
        now = utcnow()
        store = TaskStore(db)
        samples = [
            {
                "title": "Complete project documentation",
                "description": "Write comprehensive documentation for the TaskManager API",
                "priority": 2,
                "category_id": work.id if work else None,
                "due_date": now + timedelta(days=3),
                "estimated_hours": Decimal("2.5"),
            },
            {
                "title": "Review pull requests",
                "description": "Review and approve pending pull requests in the repository",
                "priority": 2,
                "category_id": work.id if work else None,
                "due_date": now + timedelta(hours=12),
                "estimated_hours": Decimal("1.0"),
            },
            {
                "title": "Plan weekend trip",
                "priority": 1,
                "category_id": personal.id if personal else None,
            },
        ]
        for sample in samples:
            task = store.create(sample)
            print(f"Created task {task.id}: {task.title}")
finally:
    db.close()
