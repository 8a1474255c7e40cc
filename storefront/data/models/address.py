from sqlalchemy import Column, Integer, String

from storefront.data.database import Base


class AddressModel(Base):
    __tablename__ = "addresses"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, nullable=True, index=True)  # NULL for guest addresses
    session_token = Column(String(64), nullable=True, index=True)  # guest owner

    full_name = Column(String(255), nullable=False)
    phone = Column(String(32), nullable=False)
    line1 = Column(String(255), nullable=False)
    line2 = Column(String(255), nullable=True)
    area = Column(String(120), nullable=True)
    district = Column(String(120), nullable=False)
    division = Column(String(120), nullable=False)
    postal_code = Column(String(16), nullable=True)

    def snapshot(self) -> dict:
        return {
            "address_id": self.id,
            "full_name": self.full_name,
            "phone": self.phone,
            "line1": self.line1,
            "line2": self.line2,
            "area": self.area,
            "district": self.district,
            "division": self.division,
            "postal_code": self.postal_code,
        }
