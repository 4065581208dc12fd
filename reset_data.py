"""
reset_data.py
-------------
Utility script to clear all stored data (users, cars, rentals, sales,
dealer approvals) from the local data.pkl file.

Usage:
    $ python reset_data.py

After running this script, you can repopulate sample data by executing:
    $ python seeds.py
"""

from carmarket.models.store import Store


def main():
    """Empty every collection of the persistent store and write it back to disk."""
    store = Store.instance()
    store.clear()
    store.save()

    print("✅ data.pkl has been successfully cleared.")
    print("💡 Tip: Run `python seeds.py` to regenerate demo data.")


if __name__ == "__main__":
    main()
