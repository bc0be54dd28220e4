# Partners module
from khata.modules.partners.models import PartnerLink

__all__ = ["PartnerLink"]
