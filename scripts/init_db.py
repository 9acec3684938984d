#!/usr/bin/env python3
"""
Database initialization script
Creates all tables, optionally seeds demo users, and audits every ledger
"""

import sys
import os

# Add parent directory to path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

# Load .env file
from dotenv import load_dotenv
load_dotenv()

from mockbook.models import Base, engine, SessionLocal, User
from mockbook.services.ledger import audit_ledger, login_or_create_user
import logging
from sqlalchemy import text, inspect

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def init_database(drop_existing: bool = False):
    """
    Initialize database tables

    Args:
        drop_existing: If True, drops all tables first (DANGER: data loss!)
    """
    logger.info("Initializing mock book database...")

    if drop_existing:
        logger.warning("Dropping all existing tables!")
        response = input("Are you sure? This will delete all data. Type 'yes' to confirm: ")
        if response.lower() != 'yes':
            logger.info("Aborted.")
            return False

        Base.metadata.drop_all(bind=engine)
        logger.info("Existing tables dropped")

    Base.metadata.create_all(bind=engine)
    logger.info("Database tables created successfully")

    inspector = inspect(engine)
    tables = inspector.get_table_names()
    logger.info("Tables: %s", ", ".join(tables))

    return True


def seed_users(usernames):
    """Create demo users (idempotent: existing names are left alone)"""
    db = SessionLocal()
    try:
        for name in usernames:
            user = login_or_create_user(db, name)
            logger.info("User %s: balance %.2f", user.username, user.current_balance)
    finally:
        db.close()


def audit_all():
    """Check every user's cached balance against their transaction ledger"""
    db = SessionLocal()
    drifted = 0
    try:
        for user in db.query(User).order_by(User.id).all():
            audit = audit_ledger(db, user)
            if audit.consistent:
                logger.info("%s: OK (%.2f, %d entries)", user.username,
                            audit.current_balance, audit.transaction_count)
            else:
                drifted += 1
                logger.error("%s: DRIFT %s", user.username, audit.to_dict())
    finally:
        db.close()
    return drifted


def check_connection():
    """Test database connection"""
    try:
        db = SessionLocal()
        db.execute(text("SELECT 1"))
        db.close()
        logger.info("Database connection successful")
        return True
    except Exception as e:
        logger.error("Database connection failed: %s", e)
        return False


if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(description="Initialize mock book database")
    parser.add_argument("--drop", action="store_true", help="Drop existing tables (DANGER!)")
    parser.add_argument("--seed", nargs="*", metavar="USERNAME", help="Create demo users")
    parser.add_argument("--check", action="store_true", help="Only check connection")
    parser.add_argument("--audit", action="store_true", help="Audit every user's ledger")

    args = parser.parse_args()

    if args.check:
        check_connection()
    elif args.audit:
        sys.exit(1 if audit_all() else 0)
    else:
        if check_connection():
            init_database(drop_existing=args.drop)

            if args.seed:
                seed_users(args.seed)

            logger.info("Database initialization complete!")
        else:
            logger.error("Cannot initialize database - connection failed")
            sys.exit(1)
