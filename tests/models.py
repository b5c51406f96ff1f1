"""Entity graph used by the test suite.

    Product --market_place--> SupplyNetwork          (belongs-to)
            --demand_source--> DemandSource          (belongs-to, aliased primary key)
            --product_metadata--> ProductMetadata    (has-one, aliased column)
            --orders--> Order                        (has-many, non-null key, status)
            --contacts--> Contact (product_contact)  (many-to-many)
    Contact --address--> Address                     (belongs-to)
    Warehouse --bins--> StorageBin                   (has-many, nullable key)
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from crudkit.models import Base, EntityModel


class SupplyNetwork(Base):
    __tablename__ = "supply_network"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(64))


class DemandSource(Base):
    __tablename__ = "demand_source"

    id: Mapped[int] = mapped_column("numeric_code", Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(64))
    updated_at: Mapped[Optional[datetime]] = mapped_column("last_change_date", DateTime)


class Address(Base):
    __tablename__ = "address"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    email: Mapped[Optional[str]] = mapped_column(String(128))
    phone: Mapped[Optional[str]] = mapped_column(String(32))
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime)


class Contact(Base):
    __tablename__ = "contact"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(64))
    address_id: Mapped[Optional[int]] = mapped_column(ForeignKey("address.id"))
    info_id: Mapped[Optional[int]] = mapped_column(ForeignKey("info.id"))
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime)

    address: Mapped[Optional[Address]] = relationship(Address)


class ProductContact(Base):
    __tablename__ = "product_contact"

    product_id: Mapped[int] = mapped_column(ForeignKey("product.id"), primary_key=True)
    contact_id: Mapped[int] = mapped_column(ForeignKey("contact.id"), primary_key=True)
    role: Mapped[Optional[str]] = mapped_column(String(32))


class ProductMetadata(Base):
    __tablename__ = "product_metadata"

    pk: Mapped[int] = mapped_column(Integer, primary_key=True)
    data: Mapped[Optional[str]] = mapped_column("value", String(256))
    product_id: Mapped[int] = mapped_column(ForeignKey("product.id"), nullable=False)


class Order(Base, EntityModel):
    __tablename__ = "product_order"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    quantity: Mapped[int] = mapped_column(Integer, default=1)
    product_id: Mapped[int] = mapped_column(ForeignKey("product.id"), nullable=False)


class Product(Base, EntityModel):
    __tablename__ = "product"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(64))
    available: Mapped[bool] = mapped_column(Boolean, default=True)
    supply_network_id: Mapped[Optional[int]] = mapped_column(ForeignKey("supply_network.id"))
    demand_source_id: Mapped[Optional[int]] = mapped_column(ForeignKey("demand_source.numeric_code"))
    info_id: Mapped[Optional[int]] = mapped_column(ForeignKey("info.id"))
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime)

    market_place: Mapped[Optional[SupplyNetwork]] = relationship(SupplyNetwork)
    demand_source: Mapped[Optional[DemandSource]] = relationship(DemandSource)
    product_metadata: Mapped[Optional[ProductMetadata]] = relationship(ProductMetadata, uselist=False)
    orders: Mapped[list[Order]] = relationship(Order)
    contacts: Mapped[list[Contact]] = relationship(Contact, secondary="product_contact")


class StorageBin(Base):
    __tablename__ = "storage_bin"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    label: Mapped[str] = mapped_column(String(32))
    warehouse_id: Mapped[Optional[int]] = mapped_column(ForeignKey("warehouse.id"))


class Warehouse(Base):
    __tablename__ = "warehouse"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(64))

    bins: Mapped[list[StorageBin]] = relationship(StorageBin)
