from sqlalchemy import Column, String, Integer, DateTime
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.core.database import Base


class Organization(Base):
    __tablename__ = "organizations"

    id = Column(Integer, primary_key=True, index=True)

    name = Column(String, nullable=False)
    type = Column(String, nullable=False, default="OPERATOR")  # OPERATOR / VENDOR / ADMIN, fixed at creation

    email = Column(String, nullable=True)
    contact_email = Column(String, nullable=True)  # preferred over email for notifications
    contact_phone = Column(String, nullable=True)

    # ONE organization has MANY properties and service requests
    properties = relationship("Property", back_populates="organization")
    service_requests = relationship("ServiceRequest", back_populates="organization")

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )
