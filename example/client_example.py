from b402_mint import SaleSettings, TokenSaleService
from b402_mint.adapters.evm.signatures import LocalAccountSigner
import httpx

buyer_pk = "0xxxx"  # Replace with the buyer's private key
recipient = "0xxxx"  # Replace with the address receiving the sale tokens


async def main():
    service = TokenSaleService.from_settings(
        SaleSettings.from_env(),
        timeout=httpx.Timeout(60.0, read=120.0),
    )
    try:
        signer = LocalAccountSigner(buyer_pk)
        usdt = service.registry.resolve("USDT")

        # 100 tokens at the quoted price, paid through the facilitator
        authorization = await service.authorization_signer.create_authorization(
            payer=signer.address,
            token_address=usdt.address,
            amount="5",
            signer=signer,
        )
        return await service.public_sale_purchase(authorization, recipient, 100)
    finally:
        await service.aclose()


if __name__ == "__main__":
    import asyncio
    result = asyncio.run(main())
    print("Minted:", result.to_dict())
