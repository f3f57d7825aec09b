from sqlalchemy import Column, String, Integer, BigInteger, Text
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class ContainerDB(Base):
    __tablename__ = "containers"

    id = Column(String(36), primary_key=True)
    image_reference = Column(String, nullable=False)
    environment_variables = Column(Text, nullable=False, default="{}")  # JSON object
    status = Column(String(16), nullable=False, default="STARTING")
    auto_terminate_seconds = Column(Integer, nullable=False, default=0)
    created_at = Column(BigInteger, nullable=False)  # epoch millis
    error_message = Column(Text, nullable=True)
    runtime_container_id = Column(String(64), nullable=True)
