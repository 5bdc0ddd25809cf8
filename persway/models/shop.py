"""
Shop model.
"""
from datetime import datetime
from ..extensions import db


class Shop(db.Model):
    """
    Shopify store that installed Persway.

    Holds the offline Admin API token used to read and write the shop's
    metafields. Behavior data itself lives in Shopify, not in this table.
    """
    __tablename__ = 'shops'

    id = db.Column(db.Integer, primary_key=True)
    shop_domain = db.Column(db.String(255), unique=True, nullable=False, index=True)
    shop_name = db.Column(db.String(255))

    # Shopify integration
    access_token = db.Column(db.Text)
    scope = db.Column(db.String(500))

    is_active = db.Column(db.Boolean, default=True)
    installed_at = db.Column(db.DateTime, default=datetime.utcnow)
    uninstalled_at = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f'<Shop {self.shop_domain}>'

    @property
    def has_api_access(self) -> bool:
        return bool(self.is_active and self.access_token)

    def to_dict(self):
        return {
            'id': self.id,
            'shop_domain': self.shop_domain,
            'shop_name': self.shop_name,
            'is_active': self.is_active,
            'installed_at': self.installed_at.isoformat() if self.installed_at else None,
            'uninstalled_at': self.uninstalled_at.isoformat() if self.uninstalled_at else None,
        }
