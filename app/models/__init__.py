from app.models.product import Product
from app.models.purchase import Purchase
from app.models.download_token import DownloadToken
from app.models.affiliate import Affiliate, AffiliateCommission

# add ALL models here
