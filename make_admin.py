"""
Promote a registered user to admin.

Usage: python make_admin.py john@example.com
"""
import sys
import argparse
import logging
from datetime import datetime

import database

logger = logging.getLogger("make_admin")


def make_admin(email: str) -> int:
    users = database.collection("user")
    user = users.find_one({"email": email.strip().lower()})
    if not user:
        logger.error("User not found with email: %s. Make sure the user has registered first.", email)
        return 1
    if user.get("role") == "admin":
        logger.info('User "%s" is already an admin', user.get("name"))
        return 0
    users.update_one({"_id": user["_id"]}, {"$set": {"role": "admin", "updated_at": datetime.utcnow()}})
    logger.info("User promoted to admin: %s <%s>", user.get("name"), user.get("email"))
    return 0


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Promote a registered user to admin")
    parser.add_argument("email", help="email address the user registered with")
    args = parser.parse_args(argv)
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(message)s")
    if database.db is None:
        logger.error("DATABASE_URL is not set")
        return 1
    return make_admin(args.email)


if __name__ == "__main__":
    sys.exit(main())
