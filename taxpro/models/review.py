"""
Customer reviews of accountants.
"""

from taxpro import db
from datetime import datetime
import uuid


class Review(db.Model):
    __tablename__ = 'reviews'
    __table_args__ = (
        db.CheckConstraint('rating >= 1 AND rating <= 5', name='ck_reviews_rating'),
    )

    id = db.Column(db.Uuid, primary_key=True, default=uuid.uuid4)
    customer_id = db.Column(db.Uuid, db.ForeignKey('customers.id'), nullable=True)
    accountant_id = db.Column(db.Uuid, db.ForeignKey('accountants.id'), nullable=True, index=True)
    tax_return_id = db.Column(db.Uuid, db.ForeignKey('tax_returns.id'), nullable=True)
    rating = db.Column(db.Integer, nullable=False)
    review_text = db.Column(db.Text, nullable=True)
    is_approved = db.Column(db.Boolean, default=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def __repr__(self) -> str:
        return f'<Review accountant_id={self.accountant_id} rating={self.rating}>'
