"""Account repository - Database operations for accounts"""

from typing import Optional

from sqlalchemy.orm import Session

from ...models import Account


class AccountRepository:
    """Repository for account database operations"""

    @staticmethod
    def get_by_id(db: Session, account_id: str) -> Optional[Account]:
        return db.query(Account).filter(Account.id == account_id).first()

    @staticmethod
    def get_by_firebase_uid(db: Session, firebase_uid: str) -> Optional[Account]:
        """Get account by Firebase UID"""
        return db.query(Account).filter(Account.firebase_uid == firebase_uid).first()

    @staticmethod
    def get_by_email(db: Session, email: str) -> Optional[Account]:
        return db.query(Account).filter(Account.email == email.lower()).first()

    @staticmethod
    def create(db: Session, **account_data) -> Account:
        account = Account(**account_data)
        db.add(account)
        db.commit()
        db.refresh(account)
        return account

    @staticmethod
    def update(db: Session, account: Account, **updates) -> Account:
        """Update an account with provided fields"""
        for key, value in updates.items():
            if hasattr(account, key):
                setattr(account, key, value)

        db.commit()
        db.refresh(account)
        return account
